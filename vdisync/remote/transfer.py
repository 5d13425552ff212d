"""Directory mirroring with protected chunk patterns"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Mapping, Optional
import logging

from ..chunking.planner import chunk_glob
from ..chunking.splitter import find_chunk_files
from ..config import TransferConfig
from ..errors import TransferFailure
from ..sync.decision import SyncPlan
from .runner import CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class TransferPolicy:
    """Filters and deletion mode for one directory transfer"""
    filters: List[str]
    delete_excluded: bool
    protected_patterns: FrozenSet[str] = frozenset()
    resynced_patterns: FrozenSet[str] = frozenset()


@dataclass
class TransferResult:
    """Outcome of one directory transfer"""
    source_dir: Path
    destination: str
    policy: TransferPolicy
    exit_status: Optional[int] = None
    removed_chunks: List[Path] = field(default_factory=list)
    error: Optional[TransferFailure] = None
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def build_transfer_policy(per_file_plans: Mapping[str, Optional[SyncPlan]],
                          source_glob: str) -> TransferPolicy:
    """
    Build the filter list for a directory.

    Raw source files never travel. Chunks of files that do not need a
    sync (or whose pass failed, plan None) are excluded, and excluded
    remote files are only safe while --delete-excluded is off.
    """
    filters = [f"- {source_glob}"]
    protected = set()
    resynced = set()

    for name in sorted(per_file_plans):
        plan = per_file_plans[name]
        pattern = chunk_glob(name)
        if plan is not None and plan.needs_sync:
            resynced.add(pattern)
        else:
            filters.append(f"- {pattern}")
            protected.add(pattern)

    return TransferPolicy(
        filters=filters,
        delete_excluded=not protected,
        protected_patterns=frozenset(protected),
        resynced_patterns=frozenset(resynced)
    )


def build_sync_args(source_dir: Path, destination: str, policy: TransferPolicy,
                    config: TransferConfig, dry_run: bool = False) -> List[str]:
    """Arguments for `rclone sync`"""
    args = ['sync', str(source_dir), destination]
    if dry_run:
        args.append('--dry-run')
    if config.verbosity:
        args.append('-' + 'v' * config.verbosity)
    if config.track_renames:
        args.append('--track-renames')

    for rule in policy.filters:
        args.extend(['--filter', rule])
    if policy.delete_excluded:
        args.append('--delete-excluded')

    args.extend([
        '--delete-after',
        '--checkers', str(config.checkers),
        '--transfers', str(config.transfers),
    ])
    if config.bwlimit:
        args.extend(['--bwlimit', config.bwlimit])
    args.extend([
        f'--multi-thread-streams={config.multi_thread_streams}',
        '--check-first',
        '--inplace',
        '--stats-one-line-date',
        '--stats', config.stats_interval,
    ])
    return args


class TransferOrchestrator:
    """Runs the mirroring collaborator for one directory and cleans up after it"""

    def __init__(self, runner: CommandRunner, source_glob: str = "*.vdi",
                 dry_run: bool = False):
        self.runner = runner
        self.source_glob = source_glob
        self.dry_run = dry_run

    async def sync(self, source_dir: Path, remote_destination: str,
                   per_file_plans: Mapping[str, Optional[SyncPlan]],
                   transfer_config: TransferConfig) -> TransferResult:
        source_dir = Path(source_dir)
        policy = build_transfer_policy(per_file_plans, self.source_glob)

        for pattern in sorted(policy.protected_patterns):
            logger.info(f"  Protecting remote {pattern} (excluded, --delete-excluded off)")

        result = TransferResult(
            source_dir=source_dir,
            destination=remote_destination,
            policy=policy,
            dry_run=self.dry_run
        )

        args = build_sync_args(source_dir, remote_destination, policy,
                               transfer_config, self.dry_run)
        logger.info(f"  Rcloning {source_dir} to {remote_destination}")

        try:
            outcome = await self.runner.run(transfer_config.rclone_binary, args,
                                            capture=False)
            result.exit_status = outcome.exit_status
            if not outcome.ok:
                result.error = TransferFailure(
                    f"rclone sync exited with status {outcome.exit_status}",
                    source_dir,
                    exit_status=outcome.exit_status
                )
                logger.error(f"  {result.error}")
        finally:
            if not self.dry_run:
                if result.ok or transfer_config.cleanup_on_failure:
                    result.removed_chunks = self.remove_local_chunks(source_dir, per_file_plans)
                    if not result.ok and result.removed_chunks:
                        logger.warning(
                            f"  Removed {len(result.removed_chunks)} local chunks "
                            f"although the transfer failed"
                        )
                else:
                    logger.warning(f"  Keeping local chunks in {source_dir} after failed transfer")

        return result

    @staticmethod
    def remove_local_chunks(source_dir: Path,
                            per_file_plans: Mapping[str, Optional[SyncPlan]]) -> List[Path]:
        """Delete chunk files of every planned source in source_dir"""
        logger.info("  Cleaning up local temporary files...")
        removed = []
        for name in sorted(per_file_plans):
            for path in find_chunk_files(source_dir, name):
                path.unlink()
                removed.append(path)
        return removed
