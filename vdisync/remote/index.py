"""Remote chunk hash listing"""

import posixpath
from typing import Dict
import logging

from ..errors import RemoteListingFailure
from .runner import CommandRunner

logger = logging.getLogger(__name__)


def parse_md5sum_output(output: str) -> Dict[str, str]:
    """Parse '<hash>  <path>' lines into {name: hash}, top level entries only"""
    index = {}
    for line in output.splitlines():
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            continue
        digest, path = parts
        path = path.strip()
        if posixpath.dirname(path):
            continue
        index[path] = digest.lower()
    return index


class RemoteHashIndex:
    """
    Fetches {chunk_name: md5} for one source file from the remote.

    Listing failures degrade to an empty index, which is
    indistinguishable from "no chunks uploaded yet" and forces a resync.
    """

    def __init__(self, runner: CommandRunner, rclone_binary: str = "rclone"):
        self.runner = runner
        self.rclone_binary = rclone_binary

    async def fetch(self, remote_destination: str, name_glob: str) -> Dict[str, str]:
        try:
            return await self._fetch(remote_destination, name_glob)
        except RemoteListingFailure as e:
            logger.warning(f"    {e}; treating remote as empty")
            return {}

    async def _fetch(self, remote_destination: str, name_glob: str) -> Dict[str, str]:
        result = await self.runner.run(
            self.rclone_binary,
            ['md5sum', remote_destination, '--include', name_glob, '--max-depth', '1']
        )

        if not result.ok:
            raise RemoteListingFailure(
                f"md5sum exited with status {result.exit_status}: "
                f"{result.stderr.strip()}",
                remote_destination
            )

        index = parse_md5sum_output(result.stdout)
        logger.debug(f"    Remote has {len(index)} chunks matching {name_glob}")
        return index
