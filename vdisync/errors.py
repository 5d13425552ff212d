"""Error kinds raised by the chunk sync engine"""

from pathlib import Path
from typing import Optional, Union


class VdiSyncError(Exception):
    """Base class for all engine errors"""

    kind = "error"

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        if self.path:
            return f"{self.kind}: {self.path}: {self.message}"
        return f"{self.kind}: {self.message}"


class InvalidConfiguration(VdiSyncError):
    """Configuration or run context can not be used"""

    kind = "InvalidConfiguration"


class RemoteListingFailure(VdiSyncError):
    """Remote hash listing failed; degrades to an empty index"""

    kind = "RemoteListingFailure"


class LocalReadFailure(VdiSyncError):
    """Source file is unreadable or shorter than expected"""

    kind = "LocalReadFailure"


# Name used by the block hasher contract
ReadFailure = LocalReadFailure


class SplitFailure(VdiSyncError):
    """Chunk materialization failed; no complete chunk set exists"""

    kind = "SplitFailure"


class TransferFailure(VdiSyncError):
    """Mirroring collaborator reported an error"""

    kind = "TransferFailure"

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None,
                 exit_status: Optional[int] = None):
        super().__init__(message, path)
        self.exit_status = exit_status
