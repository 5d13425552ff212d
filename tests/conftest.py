"""Pytest configuration and fixtures"""

import pytest
import tempfile
import shutil
from pathlib import Path

from helpers import FakeRunner, pattern_bytes


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def make_file(temp_dir):
    """Write a file with deterministic content and return its path"""
    def _make(name: str, size: int, seed: int = 0, directory: Path = None) -> Path:
        directory = directory or temp_dir
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(pattern_bytes(size, seed))
        return path
    return _make


@pytest.fixture
def fake_runner():
    return FakeRunner()
