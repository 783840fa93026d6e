# qmod/__init__.py
from qmod.archive import ArchiveMode, ZipEntryArchive, findArchiveMode
from qmod.errors import (
    QModError,
    InvalidFormatError,
    UnsupportedSchemaVersionError,
    MissingFileError,
    InvalidArgumentError,
    InvalidOperationError,
    NotFoundError,
)
from qmod.manifest import Manifest
from qmod.package import MANIFEST_PATH, Package
from qmod.schema import CURRENT_SCHEMA_VERSION, SUPPORTED_SCHEMA_VERSIONS
from qmod.types import CopyExtension, Dependency, FileCopy, ModLoader

__all__ = [
    "ArchiveMode",
    "ZipEntryArchive",
    "findArchiveMode",
    "QModError",
    "InvalidFormatError",
    "UnsupportedSchemaVersionError",
    "MissingFileError",
    "InvalidArgumentError",
    "InvalidOperationError",
    "NotFoundError",
    "Manifest",
    "MANIFEST_PATH",
    "Package",
    "CURRENT_SCHEMA_VERSION",
    "SUPPORTED_SCHEMA_VERSIONS",
    "CopyExtension",
    "Dependency",
    "FileCopy",
    "ModLoader",
]
