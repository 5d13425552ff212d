"""Compares local block hashes with the remote chunk index"""

from dataclasses import dataclass
from typing import Mapping, Optional
import logging

from ..chunking.hasher import BlockHasher
from ..chunking.planner import SourceFile, chunk_name, chunk_range
from ..config import ChunkSpec
from ..errors import LocalReadFailure

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """Verdict for one source file in one pass"""
    needs_sync: bool
    mismatch_index: Optional[int] = None
    reason: str = ""
    local_chunk_count: int = 0
    remote_chunk_count: int = 0


async def decide(local_chunk_count: int, remote_index: Mapping[str, str],
                 block_hasher: BlockHasher, source_file: SourceFile,
                 chunk_spec: ChunkSpec) -> SyncPlan:
    """
    Decide whether source_file must be split and uploaded again.

    A count mismatch answers without hashing anything. Otherwise blocks
    are hashed in index order and the first mismatch ends the scan, so
    later blocks are never read.
    """
    remote_count = len(remote_index)

    if remote_count != local_chunk_count:
        logger.info(
            f"    Block count mismatch (Local: {local_chunk_count}, "
            f"Remote: {remote_count}). Sync required."
        )
        return SyncPlan(
            needs_sync=True,
            reason="count_mismatch",
            local_chunk_count=local_chunk_count,
            remote_chunk_count=remote_count
        )

    for index in range(local_chunk_count):
        name = chunk_name(source_file.name, index, chunk_spec.suffix_length)
        byte_range = chunk_range(index, source_file.size, chunk_spec.chunk_size_bytes)

        try:
            local_hash = await block_hasher.hash_block(source_file.path, byte_range)
        except LocalReadFailure as e:
            logger.error(f"    Block {name} unreadable ({e}). Sync required.")
            return SyncPlan(
                needs_sync=True,
                mismatch_index=index,
                reason="unreadable",
                local_chunk_count=local_chunk_count,
                remote_chunk_count=remote_count
            )

        remote_hash = remote_index.get(name)
        if remote_hash is None or local_hash != remote_hash.lower():
            logger.info(f"    Block {name} differs. Sync required.")
            return SyncPlan(
                needs_sync=True,
                mismatch_index=index,
                reason="missing" if remote_hash is None else "hash_mismatch",
                local_chunk_count=local_chunk_count,
                remote_chunk_count=remote_count
            )

        logger.debug(f"    Verified block {index}/{local_chunk_count - 1}")

    return SyncPlan(
        needs_sync=False,
        reason="match",
        local_chunk_count=local_chunk_count,
        remote_chunk_count=remote_count
    )
