# qmod/errors.py
from __future__ import annotations

__all__ = [
    "QModError",
    "InvalidFormatError",
    "UnsupportedSchemaVersionError",
    "MissingFileError",
    "InvalidArgumentError",
    "InvalidOperationError",
    "NotFoundError",
]



class QModError(Exception):
    """Base class for every error raised by the qmod package."""
    pass



class InvalidFormatError(QModError, ValueError):
    """Raised when a package or its manifest cannot be read as a QMOD."""
    pass



class UnsupportedSchemaVersionError(InvalidFormatError):
    """Raised when a manifest declares a `_QPVersion` this library cannot load."""
    def __init__(self, version: str):
        super().__init__(f"Unsupported QMOD schema version {version}. Upgrade your mod installer!")
        self.version = version



class MissingFileError(InvalidFormatError):
    """Raised when a file stated in the manifest does not exist in the archive."""
    def __init__(self, kind: str, path: str):
        super().__init__(f"Missing stated {kind} {path} in manifest")
        self.kind = kind
        self.path = path



class InvalidArgumentError(QModError, ValueError):
    """Raised when a value, archive mode request or entry path is not acceptable."""
    pass



class InvalidOperationError(QModError, RuntimeError):
    """Raised when the archive mode or lifecycle state of a package forbids an operation."""
    pass



class NotFoundError(QModError, LookupError):
    """Raised when a file, file copy or cover is not part of the manifest or archive."""
    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
