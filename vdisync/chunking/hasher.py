"""Streaming block hashes"""

import hashlib
from pathlib import Path
from typing import Tuple
import logging

import aiofiles

from ..config import DEFAULT_HASH_BUFFER
from ..errors import LocalReadFailure

logger = logging.getLogger(__name__)


class BlockHasher:
    """
    Hashes a byte range of a file without materializing it.
    Memory use is bounded by buffer_size, not by the range length.
    MD5 matches the digest reported by the remote hash listing.
    """

    def __init__(self, buffer_size: int = DEFAULT_HASH_BUFFER):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size

    async def hash_block(self, file: Path, byte_range: Tuple[int, int]) -> str:
        """Return the hex digest of bytes [start, end) of file"""
        start, end = byte_range
        remaining = end - start
        if remaining < 0:
            raise ValueError(f"Invalid byte range {byte_range}")

        hasher = hashlib.md5()
        try:
            async with aiofiles.open(file, 'rb') as f:
                await f.seek(start)
                while remaining > 0:
                    data = await f.read(min(self.buffer_size, remaining))
                    if not data:
                        raise LocalReadFailure(
                            f"Unexpected end of file at offset {end - remaining}, "
                            f"expected range {start}-{end}",
                            file
                        )
                    hasher.update(data)
                    remaining -= len(data)
        except OSError as e:
            raise LocalReadFailure(f"Read failed: {e}", file) from e

        digest = hasher.hexdigest()
        logger.debug(f"md5 {file}[{start}:{end}] = {digest}")
        return digest
