"""Backup pipeline: per-directory, per-file passes"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import logging

from ..chunking.hasher import BlockHasher
from ..chunking.planner import Chunk, SourceFile, chunk_glob, plan
from ..chunking.splitter import ChunkSplitter
from ..config import BackupConfig
from ..context import RunContext
from ..errors import InvalidConfiguration, LocalReadFailure, VdiSyncError
from ..remote.index import RemoteHashIndex
from ..remote.runner import CommandRunner
from ..remote.transfer import TransferOrchestrator, TransferResult
from ..sync.decision import SyncPlan, decide
from .readme import remove_readme, render_readme, write_readme

logger = logging.getLogger(__name__)


@dataclass
class FileOutcome:
    """What happened to one source file"""
    path: Path
    plan: Optional[SyncPlan] = None
    chunks: List[Chunk] = field(default_factory=list)
    error: Optional[VdiSyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunReport:
    """Summary of a whole run"""
    files: List[FileOutcome] = field(default_factory=list)
    transfers: List[TransferResult] = field(default_factory=list)
    skipped_dirs: List[str] = field(default_factory=list)
    directory_errors: List[VdiSyncError] = field(default_factory=list)
    interrupted: bool = False

    @property
    def errors(self) -> List[VdiSyncError]:
        errors = [f.error for f in self.files if f.error is not None]
        errors.extend(self.directory_errors)
        errors.extend(t.error for t in self.transfers if t.error is not None)
        return errors

    @property
    def exit_code(self) -> int:
        return 1 if self.errors or self.interrupted else 0


class FilePass:
    """
    State of one source file for one pass.
    Nothing here outlives the pass.
    """

    def __init__(self, path: Path, destination: str, config: BackupConfig,
                 index: RemoteHashIndex, hasher: BlockHasher):
        self.path = Path(path)
        self.destination = destination
        self.config = config
        self.index = index
        self.hasher = hasher

        self.source: Optional[SourceFile] = None
        self.remote_index: Dict[str, str] = {}
        self.chunk_count = 0

    async def evaluate(self) -> SyncPlan:
        # Local stat and remote listing do not depend on each other, but
        # both must finish before the pass moves on
        source, remote_index = await asyncio.gather(
            asyncio.to_thread(SourceFile.stat, self.path),
            self.index.fetch(self.destination, chunk_glob(self.path.name)),
            return_exceptions=True
        )
        for result in (source, remote_index):
            if isinstance(result, BaseException):
                raise result
        self.source, self.remote_index = source, remote_index

        spec = self.config.chunk
        self.chunk_count = plan(self.source.size, spec.chunk_size_bytes)
        if self.chunk_count > spec.max_chunks:
            raise InvalidConfiguration(
                f"{self.chunk_count} chunks do not fit a suffix length of "
                f"{spec.suffix_length}",
                self.path
            )

        return await decide(self.chunk_count, self.remote_index, self.hasher,
                            self.source, spec)


class BackupRunner:
    """Walks the source tree and backs up each directory"""

    def __init__(self, config: BackupConfig, context: RunContext,
                 runner: Optional[CommandRunner] = None):
        self.config = config
        self.context = context
        self.dry_run = config.dry_run or context.dry_run

        self.runner = runner or CommandRunner(context.env)
        self.index = RemoteHashIndex(self.runner, config.transfer.rclone_binary)
        self.hasher = BlockHasher(config.hash_buffer_size)
        self.splitter = ChunkSplitter(config.hash_buffer_size)
        self.orchestrator = TransferOrchestrator(self.runner, config.source_glob,
                                                 self.dry_run)
        self.interrupted = False

    def request_stop(self, signal_name: str):
        """Stop before the next file; the running command is left to finish"""
        logger.warning(f"--- Killed by {signal_name}; stopping after the current step ---")
        self.interrupted = True

    def list_directories(self, report: Optional[RunReport] = None) -> List[Path]:
        directories = []
        base = Path(self.config.source_base_dir)
        for path in sorted(p for p in base.iterdir() if p.is_dir()):
            if not self.config.wants_directory(path.name):
                logger.info(f"--- SKIPPING Directory: {path.name} ---")
                if report is not None:
                    report.skipped_dirs.append(path.name)
                continue
            directories.append(path)
        return directories

    def list_source_files(self, directory: Path) -> List[Path]:
        return sorted(p for p in Path(directory).glob(self.config.source_glob) if p.is_file())

    async def evaluate_file(self, path: Path, destination: str) -> FileOutcome:
        outcome = FileOutcome(path=path)
        logger.info(f"  Comparing md5sums of remote parts to {path.name}")
        try:
            outcome.plan = await FilePass(path, destination, self.config,
                                          self.index, self.hasher).evaluate()
        except VdiSyncError as e:
            logger.error(f"  Skipping {path.name}: {e}")
            outcome.error = e
        return outcome

    async def process_file(self, path: Path, destination: str) -> FileOutcome:
        outcome = await self.evaluate_file(path, destination)
        if not outcome.ok or not outcome.plan.needs_sync:
            if outcome.ok:
                logger.info("    Remote and local match. Protecting remote parts.")
            return outcome

        if self.dry_run:
            logger.info(f"    [dry-run] Would split {path.name}")
            return outcome

        logger.info("    Remote and local mismatch. Generating new split parts...")
        try:
            outcome.chunks = await self.splitter.split(path, self.config.chunk, path.parent)
        except VdiSyncError as e:
            logger.error(f"  Skipping {path.name}: {e}")
            outcome.error = e
        return outcome

    async def backup_directory(self, directory: Path, report: RunReport):
        logger.info(f"--- Processing Directory: {directory} ---")
        destination = self.config.destination_for(directory)

        plans: Dict[str, Optional[SyncPlan]] = {}
        for path in self.list_source_files(directory):
            if self.interrupted:
                break
            outcome = await self.process_file(path, destination)
            report.files.append(outcome)
            # A failed file keeps plan None so its remote chunks stay protected
            plans[path.name] = outcome.plan if outcome.ok else None

        if self.interrupted:
            if not self.dry_run:
                self.orchestrator.remove_local_chunks(directory, plans)
            return

        if self.config.write_readme and not self.dry_run:
            chunk = self.config.chunk
            write_readme(directory, render_readme(self.config.source_glob,
                                                  chunk.chunk_size_bytes,
                                                  chunk.suffix_length))
        try:
            result = await self.orchestrator.sync(directory, destination, plans,
                                                  self.config.transfer)
        finally:
            if self.config.write_readme and not self.dry_run:
                remove_readme(directory)

        report.transfers.append(result)
        logger.info(f"Finished processing directory: {directory}")

    async def run(self) -> RunReport:
        """Back up every selected directory"""
        report = RunReport()
        logger.info(f"Source Base Directory: {self.config.source_base_dir}")

        for directory in self.list_directories(report):
            if self.interrupted:
                break
            try:
                await self.backup_directory(directory, report)
            except VdiSyncError as e:
                logger.error(f"--- Directory {directory.name} failed: {e} ---")
                report.directory_errors.append(e)
            except OSError as e:
                error = LocalReadFailure(f"Directory failed: {e}", directory)
                logger.error(f"--- {error} ---")
                report.directory_errors.append(error)

        report.interrupted = self.interrupted
        self._log_summary(report)
        return report

    async def plan_only(self) -> RunReport:
        """Compare local and remote without changing anything"""
        report = RunReport()
        for directory in self.list_directories(report):
            destination = self.config.destination_for(directory)
            for path in self.list_source_files(directory):
                if self.interrupted:
                    break
                report.files.append(await self.evaluate_file(path, destination))
            if self.interrupted:
                break

        report.interrupted = self.interrupted
        return report

    def _log_summary(self, report: RunReport):
        resynced = sum(1 for f in report.files if f.plan and f.plan.needs_sync and f.ok)
        unchanged = sum(1 for f in report.files if f.plan and not f.plan.needs_sync)
        logger.info(
            f"Backup process finished: {resynced} resynced, {unchanged} unchanged, "
            f"{len(report.errors)} errors"
        )
        for error in report.errors:
            logger.error(f"  {error}")
