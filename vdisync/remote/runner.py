"""External command execution"""

import asyncio
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
import logging

logger = logging.getLogger(__name__)

# Conventional shell statuses for "cannot execute" and "command not found"
EXIT_CANNOT_EXECUTE = 126
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of one external command"""
    stdout: str
    exit_status: int
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class CommandRunner:
    """
    Runs external commands and waits for them to finish.
    Never raises on a non-zero exit; callers map exit status to errors.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.env = dict(env) if env is not None else None

    async def run(self, command: str, args: Sequence[str],
                  capture: bool = True) -> CommandResult:
        """
        Run command with args.
        With capture=False the child writes straight to our stdout/stderr.
        """
        logger.debug(f"Running: {command} {' '.join(args)}")

        pipe = asyncio.subprocess.PIPE if capture else None
        try:
            process = await asyncio.create_subprocess_exec(
                command, *args,
                stdout=pipe,
                stderr=pipe,
                env=self.env
            )
        except FileNotFoundError:
            logger.error(f"Command not found: {command}")
            return CommandResult(stdout="", exit_status=EXIT_NOT_FOUND,
                                 stderr=f"{command}: not found")
        except OSError as e:
            logger.error(f"Cannot execute {command}: {e}")
            return CommandResult(stdout="", exit_status=EXIT_CANNOT_EXECUTE,
                                 stderr=f"{command}: {e}")

        # Shielded so the child is always reaped, even if we get cancelled
        stdout, stderr = await asyncio.shield(process.communicate())

        result = CommandResult(
            stdout=stdout.decode('utf-8', errors='replace') if stdout else "",
            exit_status=process.returncode,
            stderr=stderr.decode('utf-8', errors='replace') if stderr else ""
        )
        logger.debug(f"{command} exited with status {result.exit_status}")
        return result
