"""Tests for chunk geometry"""

import pytest

from vdisync.chunking.planner import (
    SourceFile, chunk_glob, chunk_name, chunk_ranges, parse_chunk_index,
    plan, plan_chunks
)
from vdisync.config import ChunkSpec
from vdisync.errors import InvalidConfiguration, LocalReadFailure

MIB = 1024 * 1024


class TestPlan:
    """Chunk count and boundaries"""

    @pytest.mark.parametrize("file_size,chunk_size,expected", [
        (1, 1, 1),
        (1, 10, 1),
        (10, 10, 1),
        (11, 10, 2),
        (1200 * MIB, 500 * MIB, 3),
        (1000 * MIB, 500 * MIB, 2),
        (0, 10, 0),
    ])
    def test_chunk_count(self, file_size, chunk_size, expected):
        assert plan(file_size, chunk_size) == expected

    @pytest.mark.parametrize("chunk_size", [0, -1])
    def test_non_positive_chunk_size(self, chunk_size):
        with pytest.raises(InvalidConfiguration):
            plan(100, chunk_size)

    def test_ranges_cover_file_exactly(self):
        for file_size in (1, 7, 99, 100, 101, 1000):
            for chunk_size in (1, 3, 10, 100, 4096):
                ranges = chunk_ranges(file_size, chunk_size)
                assert len(ranges) == plan(file_size, chunk_size)
                assert ranges[0][0] == 0
                assert ranges[-1][1] == file_size
                for (_, end), (start, _) in zip(ranges, ranges[1:]):
                    assert end == start
                lengths = [end - start for start, end in ranges]
                assert sum(lengths) == file_size
                assert all(length == chunk_size for length in lengths[:-1])
                assert 0 < lengths[-1] <= chunk_size


class TestNaming:
    """Chunk names"""

    def test_chunk_name(self):
        assert chunk_name("disk.vdi", 0, 4) == "disk.vdi.part.0000"
        assert chunk_name("disk.vdi", 12, 4) == "disk.vdi.part.0012"
        assert chunk_name("disk.vdi", 7, 2) == "disk.vdi.part.07"

    def test_chunk_glob(self):
        assert chunk_glob("disk.vdi") == "disk.vdi.part.*"

    def test_parse_chunk_index(self):
        assert parse_chunk_index("disk.vdi", "disk.vdi.part.0003") == 3
        assert parse_chunk_index("disk.vdi", "other.vdi.part.0003") is None
        assert parse_chunk_index("disk.vdi", "disk.vdi.part.tmp") is None
        assert parse_chunk_index("disk.vdi", "disk.vdi") is None


class TestPlanChunks:
    """Full layout for a source file"""

    def test_scenario_1200_mib(self, temp_dir):
        source = SourceFile(path=temp_dir / "disk.vdi", size=1200 * MIB)
        chunks = plan_chunks(source, ChunkSpec(chunk_size_bytes=500 * MIB, suffix_length=4))

        assert [c.name for c in chunks] == [
            "disk.vdi.part.0000", "disk.vdi.part.0001", "disk.vdi.part.0002"
        ]
        assert [c.length for c in chunks] == [500 * MIB, 500 * MIB, 200 * MIB]

    def test_output_paths(self, temp_dir):
        source = SourceFile(path=temp_dir / "disk.vdi", size=25)
        chunks = plan_chunks(source, ChunkSpec(chunk_size_bytes=10), temp_dir)
        assert chunks[2].path == temp_dir / "disk.vdi.part.0002"

    def test_suffix_too_short(self, temp_dir):
        source = SourceFile(path=temp_dir / "disk.vdi", size=101)
        with pytest.raises(InvalidConfiguration):
            plan_chunks(source, ChunkSpec(chunk_size_bytes=10, suffix_length=1))

    def test_stat_missing_file(self, temp_dir):
        with pytest.raises(LocalReadFailure):
            SourceFile.stat(temp_dir / "missing.vdi")

    def test_stat(self, make_file):
        path = make_file("disk.vdi", 123)
        source = SourceFile.stat(path)
        assert source.size == 123
        assert source.name == "disk.vdi"
