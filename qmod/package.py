# qmod/package.py
from __future__ import annotations
import asyncio
import logging
import shutil
from typing import Any, BinaryIO, Callable, Generic, IO, TypeVar, overload

from semantic_version import Version

from qmod.archive import ArchiveMode, ZipEntryArchive, findArchiveMode
from qmod.errors import (
    InvalidArgumentError,
    InvalidFormatError,
    InvalidOperationError,
    MissingFileError,
    NotFoundError,
)
from qmod.manifest import Manifest
from qmod.settings import settingBool
from qmod.types import CopyExtension, Dependency, FileCopy, ModLoader

logger = logging.getLogger(__name__)

__all__ = ["MANIFEST_PATH", "Package"]



MANIFEST_PATH = "mod.json"

T = TypeVar("T")
ItemT = TypeVar("ItemT")

Source = BinaryIO | IO[bytes] | bytes | bytearray



class _ManifestField(Generic[T]):
    """
    Exposes one manifest field on Package.

    Reads go straight to the manifest (list fields hand out a copy, assign the list back to change it).
    Writes go through Package._setValue, so permission checks, validation and dirty tracking live in one place.
    """
    def __init__(self, fieldName: str, *, copyList: bool = False):
        self.fieldName = fieldName
        self.copyList = copyList

    @overload
    def __get__(self, obj: None, objType: type | None = None) -> _ManifestField[T]: ...
    @overload
    def __get__(self, obj: Package, objType: type | None = None) -> T: ...
    def __get__(self, obj: Package | None, objType: type | None = None) -> Any:
        if obj is None:
            return self
        value = getattr(obj._manifest, self.fieldName)
        return list(value) if self.copyList else value

    def __set__(self, obj: Package, value: T) -> None:
        obj._setValue(self.fieldName, list(value) if self.copyList else value)



class Package:
    """
    A QMOD: a zip archive plus its `mod.json` manifest.

    Manifest changes are kept in memory and written back to the archive when the package is closed,
    either explicitly or by leaving a `with`/`async with` block. The caller's stream is left open.

    Operations that fail half way through copying bytes leave the archive as it is at that point.
    """

    id = _ManifestField[str]("id")
    name = _ManifestField[str]("name")
    author = _ManifestField[str]("author")
    version = _ManifestField[Version]("version")
    packageId = _ManifestField["str | None"]("packageId")
    packageVersion = _ManifestField["str | None"]("packageVersion")
    description = _ManifestField["str | None"]("description")
    porter = _ManifestField["str | None"]("porter")
    isLibrary = _ManifestField[bool]("isLibrary")
    modLoader = _ManifestField[ModLoader]("modLoader")
    dependencies = _ManifestField[list[Dependency]]("dependencies", copyList=True)
    copyExtensions = _ManifestField[list[CopyExtension]]("copyExtensions", copyList=True)

    def __init__(self, archive: ZipEntryArchive, manifest: Manifest, *, manifestModified: bool = False):
        self._archive = archive
        self._manifest = manifest
        self._manifestModified = manifestModified
        self._closed = False

    # ------------------------------------------------------------------ #
    # Opening / creating
    # ------------------------------------------------------------------ #

    @classmethod
    def open(
        cls,
        stream: BinaryIO,
        *,
        strict: bool | None = None,
        failOnMissingCover: bool | None = None,
        mode: ArchiveMode | None = None,
    ) -> Package:
        """
        Opens an existing QMOD from `stream`.

        strict:
            True  -> a mod/library file or file copy stated in the manifest but missing from the archive raises MissingFileError
            False -> such entries are dropped from the in-memory manifest
        failOnMissingCover:
            True  -> a stated but missing cover image raises MissingFileError
            False -> the cover image path is cleared
        Both default to the `open.*` settings.

        The archive mode is derived from the stream (read+write+seek -> updatable, read -> read only).
        Create mode can never be used here since the manifest must be read.
        """
        archiveMode = findArchiveMode(
            stream,
            mode,
            allowRead=True,
            allowCreate=False,
            failMessage="Cannot parse a QMOD from a stream which does not support reading",
            invalidRequestMessage="Cannot parse a QMOD using create mode",
        )
        archive = ZipEntryArchive(stream, archiveMode)
        try:
            return cls.fromArchive(archive, strict=strict, failOnMissingCover=failOnMissingCover)
        except BaseException:
            archive.close()
            raise

    @classmethod
    def fromArchive(
        cls,
        archive: ZipEntryArchive,
        *,
        strict: bool | None = None,
        failOnMissingCover: bool | None = None,
    ) -> Package:
        if archive.mode is ArchiveMode.CREATE_ONLY:
            raise InvalidArgumentError("Cannot parse a QMOD using an archive in create mode")
        if strict is None:
            strict = settingBool("open.failOnMissingStatedFile", True)
        if failOnMissingCover is None:
            failOnMissingCover = settingBool("open.failOnMissingStatedCover", False)

        if not archive.hasEntry(MANIFEST_PATH):
            raise InvalidFormatError(f"Mod archive did not contain a manifest at {MANIFEST_PATH}")
        manifest = Manifest.parse(archive.readEntry(MANIFEST_PATH))

        cover = manifest.coverImagePath
        if cover is not None and not archive.hasEntry(cover):
            if failOnMissingCover:
                raise MissingFileError("cover image", cover)
            logger.warning("Mod %s stated cover image %s, but it does not exist. Clearing it", manifest.id, cover)
            manifest.coverImagePath = None

        package = cls(archive, manifest)
        package.verifyStatedFiles(strict)
        return package

    @classmethod
    def create(
        cls,
        stream: BinaryIO,
        id: str,
        name: str | None,
        version: str | Version,
        packageId: str | None,
        packageVersion: str | None,
        author: str,
        *,
        mode: ArchiveMode | None = None,
    ) -> Package:
        """
        Starts a new QMOD in `stream`. The manifest is written when the package is closed.
        A writable stream that can't read and seek gives a create-only package.
        """
        archiveMode = findArchiveMode(
            stream,
            mode,
            allowRead=False,
            allowCreate=True,
            failMessage="Cannot create a QMOD using a stream that does not support writing",
            invalidRequestMessage="Cannot create a QMOD using read only mode",
        )
        # Validate the manifest before anything touches the stream
        manifest = Manifest.create(id, name, version, packageId, packageVersion, author)
        return cls(ZipEntryArchive(stream, archiveMode), manifest, manifestModified=True)

    @classmethod
    async def openAsync(cls, stream: BinaryIO, **kwargs: Any) -> Package:
        return await asyncio.to_thread(cls.open, stream, **kwargs)

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def archive(self) -> ZipEntryArchive:
        return self._archive

    @property
    def archiveMode(self) -> ArchiveMode:
        return self._archive.mode

    @property
    def manifestModified(self) -> bool:
        return self._manifestModified

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def schemaVersion(self) -> str:
        return self._manifest.schemaVersion

    @property
    def modFiles(self) -> tuple[str, ...]:
        return tuple(self._manifest.modFiles)

    @property
    def lateModFiles(self) -> tuple[str, ...]:
        return tuple(self._manifest.lateModFiles)

    @property
    def libraryFiles(self) -> tuple[str, ...]:
        return tuple(self._manifest.libraryFiles)

    @property
    def fileCopies(self) -> tuple[FileCopy, ...]:
        return tuple(self._manifest.fileCopies)

    def getManifest(self) -> Manifest:
        """Deep copy of the manifest; changing it does not affect the package."""
        return self._manifest.deepClone()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _requireWritable(self, message: str) -> None:
        if self._closed:
            raise InvalidOperationError("QMOD has been closed")
        if self._archive.mode is ArchiveMode.READ_ONLY:
            raise InvalidOperationError(message)

    def _setValue(self, fieldName: str, value: Any) -> None:
        self._requireWritable(f"Cannot set {fieldName} on a read only QMOD")
        current = getattr(self._manifest, fieldName)
        if current == value:
            return

        # Validation happens on assignment; a rejected value leaves the manifest untouched
        setattr(self._manifest, fieldName, value)
        if getattr(self._manifest, fieldName) != current:
            self._manifestModified = True

    def _refuseManifestPath(self, path: str, kind: str) -> None:
        if path == MANIFEST_PATH:
            raise InvalidArgumentError(f"Cannot use {MANIFEST_PATH} as the path of a {kind}, it is reserved for the manifest")

    def _deleteEntry(self, path: str, *, overwriting: bool = False) -> None:
        if self._archive.mode is ArchiveMode.CREATE_ONLY:
            if overwriting:
                raise InvalidOperationError(f"Cannot overwrite {path} in a QMOD in create mode")
            raise InvalidOperationError(f"Cannot delete {path} in a QMOD in create mode")
        self._archive.deleteEntry(path)

    def _writeEntry(self, path: str, source: Source) -> None:
        with self._archive.createEntry(path) as entryStream:
            if isinstance(source, (bytes, bytearray)):
                entryStream.write(source)
            else:
                shutil.copyfileobj(source, entryStream)

    def _openFile(self, path: str) -> IO[bytes]:
        if self._closed:
            raise InvalidOperationError("QMOD has been closed")
        if self._archive.mode is ArchiveMode.CREATE_ONLY:
            raise InvalidOperationError("Cannot open a file on a QMOD in create mode")
        return self._archive.openEntry(path)

    def _removeMissing(self, kind: str, strict: bool, items: list[ItemT], getName: Callable[[ItemT], str]) -> None:
        # Walk backwards so removals don't shift what's left to visit
        for index in range(len(items) - 1, -1, -1):
            path = getName(items[index])
            if self._archive.hasEntry(path):
                continue
            if strict:
                raise MissingFileError(kind, path)
            logger.warning("Removing stated %s %s from manifest as it does not exist in the archive", kind, path)
            del items[index]

    # ------------------------------------------------------------------ #
    # Consistency
    # ------------------------------------------------------------------ #

    def verifyStatedFiles(self, strict: bool) -> None:
        """
        Checks that every mod, late mod and library file and every file copy origin exists in the archive.
        strict raises MissingFileError on the first missing one; otherwise missing ones are dropped.
        """
        manifest = self._manifest
        self._removeMissing("mod file", strict, manifest.modFiles, lambda name: name)
        self._removeMissing("late mod file", strict, manifest.lateModFiles, lambda name: name)
        self._removeMissing("library file", strict, manifest.libraryFiles, lambda name: name)
        self._removeMissing("file copy", strict, manifest.fileCopies, lambda fileCopy: fileCopy.name)

    # ------------------------------------------------------------------ #
    # Mod, late mod and library files
    # ------------------------------------------------------------------ #

    def _createRoleFile(self, kind: str, names: list[str], path: str, source: Source) -> None:
        self._requireWritable(f"Cannot create {kind} - QMOD is read only")
        self._refuseManifestPath(path, kind)

        if self._archive.hasEntry(path):
            if path not in names:
                raise InvalidArgumentError(f"Cannot create {kind} with path {path} as it is already taken up by another file in the qmod")
            logger.debug("Overwriting %s %s", kind, path)
            self._deleteEntry(path, overwriting=True)

        self._writeEntry(path, source)
        if path not in names:
            names.append(path)
            self._manifestModified = True

    def _deleteRoleFile(self, kind: str, names: list[str], path: str) -> None:
        self._requireWritable(f"Cannot delete {kind} - QMOD is read only")
        if path not in names:
            raise NotFoundError(f"Cannot delete {kind} {path} as it does not exist", path=path)

        if self._archive.hasEntry(path):
            self._deleteEntry(path)
        names.remove(path)
        self._manifestModified = True

    def _openRoleFile(self, kind: str, names: list[str], path: str) -> IO[bytes]:
        if path not in names:
            raise NotFoundError(f"Cannot open {kind} {path} as it does not exist", path=path)
        return self._openFile(path)

    def createModFile(self, path: str, source: Source) -> None:
        self._createRoleFile("mod file", self._manifest.modFiles, path, source)

    def deleteModFile(self, path: str) -> None:
        self._deleteRoleFile("mod file", self._manifest.modFiles, path)

    def openModFile(self, path: str) -> IO[bytes]:
        return self._openRoleFile("mod file", self._manifest.modFiles, path)

    def createLateModFile(self, path: str, source: Source) -> None:
        self._createRoleFile("late mod file", self._manifest.lateModFiles, path, source)

    def deleteLateModFile(self, path: str) -> None:
        self._deleteRoleFile("late mod file", self._manifest.lateModFiles, path)

    def openLateModFile(self, path: str) -> IO[bytes]:
        return self._openRoleFile("late mod file", self._manifest.lateModFiles, path)

    def createLibraryFile(self, path: str, source: Source) -> None:
        self._createRoleFile("library file", self._manifest.libraryFiles, path, source)

    def deleteLibraryFile(self, path: str) -> None:
        self._deleteRoleFile("library file", self._manifest.libraryFiles, path)

    def openLibraryFile(self, path: str) -> IO[bytes]:
        return self._openRoleFile("library file", self._manifest.libraryFiles, path)

    # ------------------------------------------------------------------ #
    # File copies
    # ------------------------------------------------------------------ #

    def addFileCopy(self, fileCopy: FileCopy, source: Source | None = None) -> None:
        """
        Adds a file copy, writing its origin file from `source` if given.

        `source` may be left out only when another file copy already has the same origin.
        An existing entry at the origin path is overwritten only if it belongs to a file copy.
        """
        self._requireWritable("Cannot add file copy - QMOD is read only")
        fileCopies = self._manifest.fileCopies
        sharesOrigin = any(existing.name == fileCopy.name for existing in fileCopies)

        if not sharesOrigin and source is None:
            raise InvalidArgumentError(
                f"No file copy existed with the origin file {fileCopy.name}, and no stream was provided to create the origin file from"
            )

        if source is not None:
            self._refuseManifestPath(fileCopy.name, "file copy")
            if self._archive.hasEntry(fileCopy.name):
                if not sharesOrigin:
                    raise InvalidArgumentError(
                        f"Cannot create file copy with origin file {fileCopy.name}, as a file already exists in the qmod with this path"
                    )
                logger.debug("Overwriting file copy origin %s", fileCopy.name)
                self._deleteEntry(fileCopy.name, overwriting=True)
            self._writeEntry(fileCopy.name, source)

        if fileCopy not in fileCopies:
            fileCopies.append(fileCopy)
            self._manifestModified = True

    def removeFileCopy(self, fileCopy: FileCopy) -> None:
        """Removes a file copy. Its origin file goes too, unless another file copy still uses it."""
        self._requireWritable("Cannot remove file copy - QMOD is read only")
        fileCopies = self._manifest.fileCopies
        if fileCopy not in fileCopies:
            raise NotFoundError(f"Cannot remove file copy with name {fileCopy.name} as it does not exist", path=fileCopy.name)

        sameOrigin = sum(1 for existing in fileCopies if existing.name == fileCopy.name)
        if sameOrigin == 1 and self._archive.hasEntry(fileCopy.name):
            logger.debug("Deleting file copy origin %s as nothing else references it", fileCopy.name)
            self._deleteEntry(fileCopy.name)

        fileCopies.remove(fileCopy)
        self._manifestModified = True

    def openFileCopy(self, fileCopy: FileCopy) -> IO[bytes]:
        if fileCopy not in self._manifest.fileCopies:
            raise NotFoundError(f"Cannot open file copy with name {fileCopy.name} as it does not exist", path=fileCopy.name)
        return self._openFile(fileCopy.name)

    # ------------------------------------------------------------------ #
    # Cover image
    # ------------------------------------------------------------------ #

    @property
    def coverImagePath(self) -> str | None:
        return self._manifest.coverImagePath

    @coverImagePath.setter
    def coverImagePath(self, value: str | None) -> None:
        """
        None deletes the cover image. Any other value renames the existing cover entry;
        a cover that doesn't exist yet has to be written with writeCoverImage first.
        """
        self._requireWritable("Cannot change cover image path of a read only QMOD")
        if self._archive.mode is ArchiveMode.CREATE_ONLY:
            raise InvalidOperationError("Cannot change cover image of a QMOD in create mode")

        current = self._manifest.coverImagePath
        if current == value:
            return
        if current is None:
            raise InvalidOperationError(
                "Cannot set cover image path when no cover image file exists. Write the cover image using writeCoverImage first!"
            )

        if value is None:
            if self._archive.hasEntry(current):
                self._deleteEntry(current)
        else:
            self._refuseManifestPath(value, "cover image")
            if self._archive.hasEntry(value):
                raise InvalidArgumentError(f"File with name {value} already exists within the QMOD. Cannot rename the cover to this")
            if self._archive.hasEntry(current):
                with self._archive.openEntry(current) as oldCover:
                    self._writeEntry(value, oldCover)
                self._deleteEntry(current)
                logger.debug("Renamed cover image %s -> %s", current, value)

        self._manifest.coverImagePath = value
        self._manifestModified = True

    def writeCoverImage(self, name: str, source: Source) -> None:
        """Writes the cover image to `name`, replacing any previous cover."""
        self._requireWritable("Cannot write mod cover image, as the archive is read only")
        self._refuseManifestPath(name, "cover image")

        current = self._manifest.coverImagePath
        if name != current and self._archive.hasEntry(name):
            raise InvalidArgumentError(f"Cannot set cover image at path {name}, as a file already exists there")

        if current is not None and self._archive.hasEntry(current):
            self._deleteEntry(current, overwriting=True)
        self._writeEntry(name, source)

        # Bypasses the property setter, which would try to rename
        if current != name:
            self._manifest.coverImagePath = name
            self._manifestModified = True

    def openCoverImage(self) -> IO[bytes]:
        cover = self._manifest.coverImagePath
        if cover is None:
            raise NotFoundError("Could not open the cover image as no cover image is set")
        return self._openFile(cover)

    # ------------------------------------------------------------------ #
    # Async variants
    # ------------------------------------------------------------------ #

    async def createModFileAsync(self, path: str, source: Source) -> None:
        await asyncio.to_thread(self.createModFile, path, source)

    async def createLateModFileAsync(self, path: str, source: Source) -> None:
        await asyncio.to_thread(self.createLateModFile, path, source)

    async def createLibraryFileAsync(self, path: str, source: Source) -> None:
        await asyncio.to_thread(self.createLibraryFile, path, source)

    async def addFileCopyAsync(self, fileCopy: FileCopy, source: Source | None = None) -> None:
        await asyncio.to_thread(self.addFileCopy, fileCopy, source)

    async def writeCoverImageAsync(self, name: str, source: Source) -> None:
        await asyncio.to_thread(self.writeCoverImage, name, source)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def _flushManifest(self) -> None:
        archive = self._archive
        if archive.hasEntry(MANIFEST_PATH):
            archive.deleteEntry(MANIFEST_PATH)
        with archive.createEntry(MANIFEST_PATH) as manifestStream:
            manifestStream.write(self._manifest.serialize())
        self._manifestModified = False
        logger.debug("Saved manifest of %s", self._manifest.id)

    def close(self) -> None:
        """Writes the manifest if it changed, then closes the archive. Calling it again does nothing."""
        if self._closed:
            return
        try:
            if self._manifestModified and self._archive.mode is not ArchiveMode.READ_ONLY:
                self._flushManifest()
        finally:
            self._closed = True
            self._archive.close()

    async def aclose(self) -> None:
        await asyncio.to_thread(self.close)

    def __enter__(self) -> Package:
        return self

    def __exit__(self, excType, excValue, traceback) -> None:
        self.close()

    async def __aenter__(self) -> Package:
        return self

    async def __aexit__(self, excType, excValue, traceback) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"Package(id={self._manifest.id!r}, version={str(self._manifest.version)!r}, mode={self.archiveMode.value})"
