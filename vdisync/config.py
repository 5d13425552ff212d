"""Backup configuration"""

import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Union

import yaml

from .errors import InvalidConfiguration

MIB = 1024 * 1024

DEFAULT_CHUNK_SIZE = 500 * MIB
DEFAULT_SUFFIX_LENGTH = 4
DEFAULT_HASH_BUFFER = 1 * MIB

README_FILENAME = "README_VDI_RECONSTITUTION.txt"

_SIZE_RE = re.compile(r'^\s*(\d+)\s*([KMGT]?)(?:i?B)?\s*$', re.IGNORECASE)
_SIZE_UNITS = {'': 1, 'K': 1024, 'M': MIB, 'G': 1024 * MIB, 'T': 1024 * 1024 * MIB}


def parse_size(value: Union[int, str]) -> int:
    """Parse a byte count such as 524288000, '500M' or '1GiB'"""
    if isinstance(value, bool):
        raise InvalidConfiguration(f"Invalid size: {value!r}")
    if isinstance(value, int):
        return value

    match = _SIZE_RE.match(str(value))
    if not match:
        raise InvalidConfiguration(f"Invalid size: {value!r}")

    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[unit.upper()]


@dataclass(frozen=True)
class ChunkSpec:
    """Chunk geometry, constant for the lifetime of the process"""
    chunk_size_bytes: int = DEFAULT_CHUNK_SIZE
    suffix_length: int = DEFAULT_SUFFIX_LENGTH

    def validate(self):
        if self.chunk_size_bytes <= 0:
            raise InvalidConfiguration(
                f"chunk_size_bytes must be positive, got {self.chunk_size_bytes}"
            )
        if self.suffix_length <= 0:
            raise InvalidConfiguration(
                f"suffix_length must be positive, got {self.suffix_length}"
            )

    @property
    def max_chunks(self) -> int:
        """Largest chunk count the suffix width can name"""
        return 10 ** self.suffix_length


@dataclass
class TransferConfig:
    """Limits and flags handed to the mirroring collaborator"""
    checkers: int = 16
    transfers: int = 1
    bwlimit: Optional[str] = "30M"
    multi_thread_streams: int = 1
    verbosity: int = 1
    track_renames: bool = False
    stats_interval: str = "2m"
    rclone_binary: str = "rclone"
    cleanup_on_failure: bool = True

    def validate(self):
        for name in ('checkers', 'transfers', 'multi_thread_streams'):
            if getattr(self, name) < 1:
                raise InvalidConfiguration(f"{name} must be at least 1")
        if self.verbosity < 0:
            raise InvalidConfiguration("verbosity can not be negative")


@dataclass
class BackupConfig:
    """Complete configuration of a backup run"""
    source_base_dir: Optional[Path] = None
    remote_base: Optional[str] = None
    source_glob: str = "*.vdi"
    skip_dirs: FrozenSet[str] = frozenset()
    only_dirs: Optional[FrozenSet[str]] = None
    dry_run: bool = False
    write_readme: bool = True
    hash_buffer_size: int = DEFAULT_HASH_BUFFER
    chunk: ChunkSpec = field(default_factory=ChunkSpec)
    transfer: TransferConfig = field(default_factory=TransferConfig)

    def validate(self, require_paths: bool = True):
        """Raise InvalidConfiguration if the run can not start"""
        self.chunk.validate()
        self.transfer.validate()

        if self.hash_buffer_size <= 0:
            raise InvalidConfiguration("hash_buffer_size must be positive")
        if self.skip_dirs and self.only_dirs is not None:
            raise InvalidConfiguration("skip_dirs and only_dirs are mutually exclusive")
        if not self.source_glob:
            raise InvalidConfiguration("source_glob can not be empty")

        if require_paths:
            if self.source_base_dir is None:
                raise InvalidConfiguration("source_base_dir is required")
            if not Path(self.source_base_dir).is_dir():
                raise InvalidConfiguration(
                    "Source directory is missing", self.source_base_dir
                )
            if not self.remote_base:
                raise InvalidConfiguration("remote_base is required")

    def wants_directory(self, name: str) -> bool:
        if self.only_dirs is not None:
            return name in self.only_dirs
        return name not in self.skip_dirs

    def destination_for(self, directory: Path) -> str:
        """Remote path mirroring a directory under the source base"""
        directory = Path(directory)
        # Symlinked VM directories keep the name they have under the base
        try:
            relative = directory.relative_to(Path(self.source_base_dir))
        except ValueError:
            relative = Path(directory.name)
        return f"{self.remote_base.rstrip('/')}/{relative.as_posix()}"


def _build(cls, data: Dict[str, Any], section: str):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise InvalidConfiguration(
            f"Unknown {section} option(s): {', '.join(sorted(unknown))}"
        )
    return cls(**data)


def config_from_dict(data: Dict[str, Any]) -> BackupConfig:
    """Build a BackupConfig from a parsed mapping"""
    data = dict(data or {})

    chunk_data = dict(data.pop('chunk', None) or {})
    if 'chunk_size' in chunk_data:
        chunk_data['chunk_size_bytes'] = chunk_data.pop('chunk_size')
    if 'chunk_size_bytes' in chunk_data:
        chunk_data['chunk_size_bytes'] = parse_size(chunk_data['chunk_size_bytes'])
    chunk = _build(ChunkSpec, chunk_data, 'chunk')

    transfer = _build(TransferConfig, dict(data.pop('transfer', None) or {}), 'transfer')

    if 'source_base_dir' in data and data['source_base_dir'] is not None:
        data['source_base_dir'] = Path(data['source_base_dir']).expanduser()
    if 'skip_dirs' in data:
        data['skip_dirs'] = frozenset(data['skip_dirs'] or ())
    if data.get('only_dirs') is not None:
        data['only_dirs'] = frozenset(data['only_dirs'])
    if 'hash_buffer_size' in data:
        data['hash_buffer_size'] = parse_size(data['hash_buffer_size'])

    config = _build(BackupConfig, data, 'backup')
    return replace(config, chunk=chunk, transfer=transfer)


def load_config(path: Path) -> BackupConfig:
    """Load configuration from a YAML file"""
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise InvalidConfiguration(f"Can not read config: {e}", path) from e
    except yaml.YAMLError as e:
        raise InvalidConfiguration(f"Invalid YAML: {e}", path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidConfiguration("Top level of the config must be a mapping", path)

    return config_from_dict(data)
