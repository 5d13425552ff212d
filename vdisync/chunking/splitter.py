"""Materializes a source file into numbered chunk files"""

import os
from pathlib import Path
from typing import Iterable, List, Union
import logging

import aiofiles
import psutil

from ..config import ChunkSpec, DEFAULT_HASH_BUFFER
from ..errors import LocalReadFailure, SplitFailure
from .planner import Chunk, SourceFile, parse_chunk_index, plan_chunks

logger = logging.getLogger(__name__)

TEMP_PREFIX = "."
TEMP_SUFFIX = ".tmp"


def _temp_path(chunk_path: Path) -> Path:
    return chunk_path.with_name(f"{TEMP_PREFIX}{chunk_path.name}{TEMP_SUFFIX}")


def find_chunk_files(directory: Path, source_name: str) -> List[Path]:
    """Existing chunk files of source_name in directory, in index order"""
    found = []
    for path in Path(directory).iterdir():
        index = parse_chunk_index(source_name, path.name)
        if index is not None and path.is_file():
            found.append((index, path))
    return [path for _, path in sorted(found)]


def _find_temp_files(directory: Path, source_name: str) -> List[Path]:
    temps = []
    for path in Path(directory).iterdir():
        name = path.name
        if name.startswith(TEMP_PREFIX) and name.endswith(TEMP_SUFFIX):
            inner = name[len(TEMP_PREFIX):-len(TEMP_SUFFIX)]
            if parse_chunk_index(source_name, inner) is not None:
                temps.append(path)
    return temps


class ChunkSplitter:
    """
    Deterministic splitter.

    Chunks are written under hidden temporary names and renamed into place
    only once every chunk is complete, so a failed split never leaves a
    chunk set that looks finished.
    """

    def __init__(self, buffer_size: int = DEFAULT_HASH_BUFFER):
        self.buffer_size = buffer_size

    async def split(self, source_file: Union[SourceFile, Path], chunk_spec: ChunkSpec,
                    output_dir: Path) -> List[Chunk]:
        """Write every chunk of source_file into output_dir"""
        if not isinstance(source_file, SourceFile):
            source_file = SourceFile.stat(source_file)
        output_dir = Path(output_dir)

        chunks = plan_chunks(source_file, chunk_spec, output_dir)
        written: List[Path] = []
        finalized: List[Path] = []
        try:
            stale = find_chunk_files(output_dir, source_file.name)
            self._check_free_space(source_file, output_dir, stale)

            for path in stale + _find_temp_files(output_dir, source_file.name):
                logger.debug(f"Removing stale chunk {path.name}")
                path.unlink()

            async with aiofiles.open(source_file.path, 'rb') as src:
                for chunk in chunks:
                    temp = _temp_path(chunk.path)
                    written.append(temp)
                    await self._write_chunk(src, chunk, temp)

            for chunk in chunks:
                os.replace(_temp_path(chunk.path), chunk.path)
                finalized.append(chunk.path)
                logger.debug(f"Created {chunk.name} ({chunk.length} bytes)")

            self._match_mtime(source_file.path, chunks)
        except (OSError, LocalReadFailure) as e:
            self._discard(written + finalized)
            raise SplitFailure(f"Split failed: {e}", source_file.path) from e
        except BaseException:
            self._discard(written + finalized)
            raise

        logger.info(f"Split {source_file.name} into {len(chunks)} chunks")
        return chunks

    async def _write_chunk(self, src, chunk: Chunk, temp: Path):
        await src.seek(chunk.start)
        remaining = chunk.length
        async with aiofiles.open(temp, 'wb') as dst:
            while remaining > 0:
                data = await src.read(min(self.buffer_size, remaining))
                if not data:
                    raise LocalReadFailure(
                        f"Source ended early while writing {chunk.name}", chunk.path
                    )
                await dst.write(data)
                remaining -= len(data)

    def _check_free_space(self, source_file: SourceFile, output_dir: Path,
                          stale: List[Path]):
        try:
            free = psutil.disk_usage(str(output_dir)).free
        except OSError as e:
            raise SplitFailure(f"Can not query free space: {e}", output_dir) from e

        reclaimable = sum(p.stat().st_size for p in stale)
        if free + reclaimable < source_file.size:
            raise SplitFailure(
                f"Insufficient disk space: need {source_file.size} bytes, "
                f"{free + reclaimable} available",
                output_dir
            )

    @staticmethod
    def _match_mtime(source: Path, chunks: List[Chunk]):
        """Give chunks the source modification time so remote comparisons stay stable"""
        st = source.stat()
        for chunk in chunks:
            os.utime(chunk.path, ns=(st.st_atime_ns, st.st_mtime_ns))

    @staticmethod
    def _discard(paths: Iterable[Path]):
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")


async def reconstitute(chunk_paths: Iterable[Path], output: Path,
                       buffer_size: int = DEFAULT_HASH_BUFFER) -> int:
    """Concatenate chunk files in the given order; returns bytes written"""
    total = 0
    async with aiofiles.open(output, 'wb') as dst:
        for path in chunk_paths:
            async with aiofiles.open(path, 'rb') as src:
                while data := await src.read(buffer_size):
                    await dst.write(data)
                    total += len(data)
    return total
