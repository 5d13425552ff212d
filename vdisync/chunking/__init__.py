from .planner import (
    SourceFile, Chunk, plan, plan_chunks, chunk_name, chunk_glob,
    chunk_range, chunk_ranges, parse_chunk_index
)
from .hasher import BlockHasher
from .splitter import ChunkSplitter, find_chunk_files, reconstitute

__all__ = [
    'SourceFile',
    'Chunk',
    'plan',
    'plan_chunks',
    'chunk_name',
    'chunk_glob',
    'chunk_range',
    'chunk_ranges',
    'parse_chunk_index',
    'BlockHasher',
    'ChunkSplitter',
    'find_chunk_files',
    'reconstitute'
]
