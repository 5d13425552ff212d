"""Shared test doubles"""

import hashlib

from vdisync.remote.runner import CommandResult


class FakeRunner:
    """Stands in for CommandRunner; answers by rclone subcommand"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    async def run(self, command, args, capture=True):
        self.calls.append((command, list(args), capture))
        response = self.responses.get(args[0])
        if callable(response):
            response = response(list(args))
        return response or CommandResult(stdout="", exit_status=0)

    def calls_for(self, subcommand):
        return [args for _, args, _ in self.calls if args[0] == subcommand]


def pattern_bytes(size: int, seed: int = 0) -> bytes:
    """Deterministic test content"""
    return bytes((i * 31 + seed * 7 + (i >> 8)) % 256 for i in range(size))


def md5_listing(data: bytes, name: str, chunk_size: int, suffix_length: int = 4,
                prefix: str = "") -> str:
    """rclone md5sum style output for the chunks of data"""
    lines = []
    for index, start in enumerate(range(0, len(data), chunk_size)):
        digest = hashlib.md5(data[start:start + chunk_size]).hexdigest()
        lines.append(f"{digest}  {prefix}{name}.part.{index:0{suffix_length}d}")
    return "\n".join(lines) + ("\n" if lines else "")
