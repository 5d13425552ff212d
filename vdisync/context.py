"""Process identity resolved once at startup"""

import os
import pwd
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional
import logging

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """
    Immutable environment handed to every external command
    The process environment itself is never modified
    """
    username: str
    env: Mapping[str, str]
    dry_run: bool = False


def build_run_context(environ: Optional[Mapping[str, str]] = None,
                      uid: Optional[int] = None,
                      dry_run: bool = False) -> RunContext:
    """
    Reconcile USER and LOGNAME with the real user id.
    Cron does not always set USER, and some tools refuse to run
    when USER and LOGNAME disagree.
    """
    environ = dict(os.environ if environ is None else environ)
    uid = os.getuid() if uid is None else uid

    try:
        username = pwd.getpwuid(uid).pw_name
    except KeyError as e:
        raise InvalidConfiguration(f"Could not determine the username for UID {uid}") from e

    for var in ('USER', 'LOGNAME'):
        if not environ.get(var):
            logger.debug(f"Setting {var}={username} for child processes")
            environ[var] = username
        elif environ[var] != username:
            raise InvalidConfiguration(
                f"Env var {var}={environ[var]} does not match the user name {username}"
            )

    return RunContext(username=username, env=MappingProxyType(environ), dry_run=dry_run)
