
import asyncio
import argparse
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path

from vdisync.backup.runner import BackupRunner, RunReport
from vdisync.chunking.planner import parse_chunk_index
from vdisync.chunking.splitter import find_chunk_files, reconstitute
from vdisync.config import BackupConfig, load_config, parse_size
from vdisync.context import build_run_context
from vdisync.errors import InvalidConfiguration, VdiSyncError

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


def setup_logging(log_file: str):
    """Log to stdout and to a file"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def build_config(args) -> BackupConfig:
    """Config file values, overridden by command line flags"""
    config = load_config(Path(args.config)) if args.config else BackupConfig()

    overrides = {}
    if args.source_dir:
        overrides['source_base_dir'] = Path(args.source_dir).expanduser()
    if args.remote:
        overrides['remote_base'] = args.remote
    if args.skip:
        overrides['skip_dirs'] = frozenset(args.skip)
    if args.only:
        overrides['only_dirs'] = frozenset(args.only)
    if args.glob:
        overrides['source_glob'] = args.glob
    if args.dry_run:
        overrides['dry_run'] = True
    if args.no_readme:
        overrides['write_readme'] = False

    chunk_overrides = {}
    if args.chunk_size is not None:
        chunk_overrides['chunk_size_bytes'] = parse_size(args.chunk_size)
    if args.suffix_length is not None:
        chunk_overrides['suffix_length'] = args.suffix_length

    transfer_overrides = {}
    if args.checkers is not None:
        transfer_overrides['checkers'] = args.checkers
    if args.transfers is not None:
        transfer_overrides['transfers'] = args.transfers
    if args.bwlimit is not None:
        transfer_overrides['bwlimit'] = args.bwlimit or None
    if args.keep_chunks_on_failure:
        transfer_overrides['cleanup_on_failure'] = False

    return replace(
        config,
        chunk=replace(config.chunk, **chunk_overrides),
        transfer=replace(config.transfer, **transfer_overrides),
        **overrides
    )


def install_signal_handlers(runner: BackupRunner):
    """Log termination signals and let the running command finish"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGHUP, signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Can not install handler for {sig.name}")


def print_plan(report: RunReport):
    for outcome in report.files:
        if outcome.error is not None:
            verdict = f"ERROR ({outcome.error.kind})"
        elif outcome.plan.needs_sync:
            where = ""
            if outcome.plan.mismatch_index is not None:
                where = f" at block {outcome.plan.mismatch_index}"
            verdict = f"SYNC ({outcome.plan.reason}{where})"
        else:
            verdict = "UNCHANGED"
        print(f"{verdict:40} {outcome.path}")


async def run_backup(args, plan_only: bool = False) -> int:
    """Run backup or plan mode"""
    config = build_config(args)
    config.validate()
    context = build_run_context(dry_run=config.dry_run or plan_only)

    logger.info("=== Starting disk image chunk backup ===")
    logger.info(f"Remote: {config.remote_base}")
    logger.info(
        f"Chunk size: {config.chunk.chunk_size_bytes} bytes, "
        f"suffix length {config.chunk.suffix_length}"
    )
    if context.dry_run:
        logger.info("Dry run: nothing will be split, uploaded or deleted")

    runner = BackupRunner(config, context)
    install_signal_handlers(runner)

    if plan_only:
        report = await runner.plan_only()
        print_plan(report)
    else:
        report = await runner.run()

    return report.exit_code


async def run_restore(args) -> int:
    """Reassemble a source file from its chunks"""
    directory = Path(args.dir)
    if not args.name:
        raise InvalidConfiguration("--name is required for restore")
    if not directory.is_dir():
        logger.error(f"Chunk directory {directory} does not exist")
        return 1

    chunks = find_chunk_files(directory, args.name)
    if not chunks:
        logger.error(f"No chunks of {args.name} found in {directory}")
        return 1

    indices = [parse_chunk_index(args.name, p.name) for p in chunks]
    if indices != list(range(len(chunks))):
        logger.error(f"Chunk set for {args.name} is incomplete: found indices {indices}")
        return 1

    output = Path(args.output) if args.output else directory / args.name
    if output.exists() and not args.force:
        logger.error(f"{output} exists; use --force to overwrite")
        return 1

    written = await reconstitute(chunks, output)
    logger.info(f"Restored {output} from {len(chunks)} chunks ({written} bytes)")
    return 0


def create_parser():
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        description='Differential chunk backup of disk images to an rclone remote',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Back up every VM directory
  python main.py backup --source-dir /vol/VirtualBoxVMs --remote pcloud:/backups/VirtualBoxVMs

  # Show which disk images would be uploaded again
  python main.py plan --config vdisync.yaml

  # Reassemble a disk image from downloaded chunks
  python main.py restore --dir ./MyVM --name MyVM.vdi
        """
    )

    # Mode selection
    parser.add_argument(
        'mode',
        choices=['backup', 'plan', 'restore'],
        help='Execution mode'
    )

    # Common arguments
    parser.add_argument(
        '--config',
        help='YAML configuration file'
    )
    parser.add_argument(
        '--source-dir',
        help='Base directory holding one subdirectory per VM'
    )
    parser.add_argument(
        '--remote',
        help='rclone remote base path (e.g. pcloud:/backups/VirtualBoxVMs)'
    )
    parser.add_argument(
        '--skip',
        action='append',
        help='Subdirectory to skip (multiple allowed)'
    )
    parser.add_argument(
        '--only',
        action='append',
        help='Only back up this subdirectory (multiple allowed)'
    )
    parser.add_argument(
        '--glob',
        help='Source file pattern (default: *.vdi)'
    )

    # Chunking arguments
    parser.add_argument(
        '--chunk-size',
        help='Chunk size, e.g. 500M (default: 500M)'
    )
    parser.add_argument(
        '--suffix-length',
        type=int,
        help='Digits in the chunk index (default: 4)'
    )

    # Transfer arguments
    parser.add_argument(
        '--checkers',
        type=int,
        help='Files compared concurrently by rclone (default: 16)'
    )
    parser.add_argument(
        '--transfers',
        type=int,
        help='Files transferred concurrently by rclone (default: 1)'
    )
    parser.add_argument(
        '--bwlimit',
        help='rclone bandwidth limit, empty for none (default: 30M)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Do not split, upload or delete anything'
    )
    parser.add_argument(
        '--no-readme',
        action='store_true',
        help='Do not upload reconstitution instructions'
    )
    parser.add_argument(
        '--keep-chunks-on-failure',
        action='store_true',
        help='Keep local chunks when the transfer fails'
    )

    # Restore arguments
    parser.add_argument(
        '--dir',
        default='.',
        help='Directory holding the chunks (restore mode)'
    )
    parser.add_argument(
        '--name',
        help='Original file name, e.g. MyVM.vdi (restore mode)'
    )
    parser.add_argument(
        '--output',
        help='Output path (restore mode, default: <dir>/<name>)'
    )
    parser.add_argument(
        '--force',
        action='store_true',
        help='Overwrite an existing output file (restore mode)'
    )

    # Logging
    parser.add_argument(
        '--log-file',
        default='vdisync.log',
        help='Log file, empty to disable (default: vdisync.log)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Minimal output'
    )

    return parser


async def main(argv=None) -> int:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_file)

    # Adjust logging level
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    # Route to appropriate mode
    try:
        if args.mode == 'backup':
            return await run_backup(args)
        elif args.mode == 'plan':
            return await run_backup(args, plan_only=True)
        elif args.mode == 'restore':
            return await run_restore(args)
    except InvalidConfiguration as e:
        logger.error(f"{e}")
        return EXIT_CONFIG_ERROR
    except VdiSyncError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    return 0


def cli():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        sys.exit(130)


if __name__ == '__main__':
    cli()
