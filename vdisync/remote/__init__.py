from .runner import CommandRunner, CommandResult
from .index import RemoteHashIndex, parse_md5sum_output
from .transfer import (
    TransferOrchestrator, TransferPolicy, TransferResult,
    build_transfer_policy, build_sync_args
)

__all__ = [
    'CommandRunner',
    'CommandResult',
    'RemoteHashIndex',
    'parse_md5sum_output',
    'TransferOrchestrator',
    'TransferPolicy',
    'TransferResult',
    'build_transfer_policy',
    'build_sync_args'
]
