"""Deterministic chunk geometry"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from ..config import ChunkSpec
from ..errors import InvalidConfiguration, LocalReadFailure

PART_SEPARATOR = ".part."

ByteRange = Tuple[int, int]


@dataclass(frozen=True)
class SourceFile:
    """A source file as observed at the start of a pass"""
    path: Path
    size: int

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def stat(cls, path: Path) -> 'SourceFile':
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise LocalReadFailure(f"Can not stat source file: {e}", path) from e
        return cls(path=path, size=size)


@dataclass(frozen=True)
class Chunk:
    """One slice of a source file"""
    index: int
    name: str
    start: int
    end: int
    path: Optional[Path] = None

    @property
    def byte_range(self) -> ByteRange:
        return (self.start, self.end)

    @property
    def length(self) -> int:
        return self.end - self.start


def plan(file_size: int, chunk_size_bytes: int) -> int:
    """Number of chunks needed for a file: ceil(file_size / chunk_size_bytes)"""
    if chunk_size_bytes <= 0:
        raise InvalidConfiguration(
            f"chunk_size_bytes must be positive, got {chunk_size_bytes}"
        )
    if file_size < 0:
        raise InvalidConfiguration(f"file_size can not be negative, got {file_size}")
    return (file_size + chunk_size_bytes - 1) // chunk_size_bytes


def chunk_name(source_name: str, index: int, suffix_length: int) -> str:
    """<source_name>.part.<zero padded index>"""
    return f"{source_name}{PART_SEPARATOR}{index:0{suffix_length}d}"


def chunk_glob(source_name: str) -> str:
    """Name pattern matching every chunk of one source file"""
    return f"{source_name}{PART_SEPARATOR}*"


def chunk_range(index: int, file_size: int, chunk_size_bytes: int) -> ByteRange:
    start = index * chunk_size_bytes
    return (start, min(start + chunk_size_bytes, file_size))


def chunk_ranges(file_size: int, chunk_size_bytes: int) -> List[ByteRange]:
    """Contiguous, non-overlapping ranges covering the whole file"""
    return [
        chunk_range(i, file_size, chunk_size_bytes)
        for i in range(plan(file_size, chunk_size_bytes))
    ]


def plan_chunks(source: SourceFile, spec: ChunkSpec,
                output_dir: Optional[Path] = None) -> List[Chunk]:
    """Full chunk layout for a source file"""
    count = plan(source.size, spec.chunk_size_bytes)
    if count > spec.max_chunks:
        raise InvalidConfiguration(
            f"{count} chunks do not fit a suffix length of {spec.suffix_length}",
            source.path
        )

    chunks = []
    for index in range(count):
        name = chunk_name(source.name, index, spec.suffix_length)
        start, end = chunk_range(index, source.size, spec.chunk_size_bytes)
        chunks.append(Chunk(
            index=index,
            name=name,
            start=start,
            end=end,
            path=Path(output_dir) / name if output_dir is not None else None
        ))
    return chunks


def parse_chunk_index(source_name: str, name: str) -> Optional[int]:
    """Index encoded in a chunk name, or None if it is not a chunk of source_name"""
    prefix = f"{source_name}{PART_SEPARATOR}"
    if not name.startswith(prefix):
        return None
    suffix = name[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)
