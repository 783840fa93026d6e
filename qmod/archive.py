# qmod/archive.py
from __future__ import annotations
import io
import logging
import zipfile
from enum import Enum
from typing import IO, BinaryIO

from qmod.errors import InvalidArgumentError, InvalidFormatError, InvalidOperationError, NotFoundError
from qmod.settings import setting

logger = logging.getLogger(__name__)

__all__ = [
    "ArchiveMode",
    "StreamCapabilities",
    "streamCapabilities",
    "findArchiveMode",
    "ZipEntryArchive",
]



class ArchiveMode(str, Enum):
    READ_ONLY = "readOnly"      # Nothing may be modified
    CREATE_ONLY = "createOnly"  # New entries may be written, existing ones can't be read, renamed or deleted
    UPDATABLE = "updatable"     # Everything goes



_COMPRESSION = {
    "deflated": zipfile.ZIP_DEFLATED,
    "stored": zipfile.ZIP_STORED,
}



class StreamCapabilities:
    __slots__ = ("canRead", "canWrite", "canSeek")

    def __init__(self, canRead: bool, canWrite: bool, canSeek: bool):
        self.canRead = canRead
        self.canWrite = canWrite
        self.canSeek = canSeek

    def supports(self, mode: ArchiveMode) -> bool:
        if mode is ArchiveMode.UPDATABLE:
            return self.canRead and self.canWrite and self.canSeek
        if mode is ArchiveMode.CREATE_ONLY:
            return self.canWrite
        return self.canRead

    def __repr__(self) -> str:
        return f"StreamCapabilities(read={self.canRead}, write={self.canWrite}, seek={self.canSeek})"



def _flag(stream: object, name: str) -> bool:
    probe = getattr(stream, name, None)
    if not callable(probe):
        return False
    try:
        return bool(probe())
    except ValueError:
        # Closed file objects raise instead of answering
        return False



def streamCapabilities(stream: object) -> StreamCapabilities:
    return StreamCapabilities(
        canRead=_flag(stream, "readable"),
        canWrite=_flag(stream, "writable"),
        canSeek=_flag(stream, "seekable"),
    )



def findArchiveMode(
    stream: object,
    requested: ArchiveMode | None,
    *,
    allowRead: bool,
    allowCreate: bool,
    failMessage: str,
    invalidRequestMessage: str,
) -> ArchiveMode:
    """
    Picks the archive mode for `stream`, once, from what it can do.

      read + write + seek  -> UPDATABLE
      write                -> CREATE_ONLY (when allowed)
      read                 -> READ_ONLY (when allowed)

    A requested mode is honoured only if the caller is allowed to use it and the stream supports it.
    """
    if (requested is ArchiveMode.READ_ONLY and not allowRead) or (requested is ArchiveMode.CREATE_ONLY and not allowCreate):
        raise InvalidArgumentError(invalidRequestMessage)

    caps = streamCapabilities(stream)
    if requested is not None:
        if not caps.supports(requested):
            raise InvalidArgumentError(f"Cannot use archive mode {requested.value} with a stream supporting {caps!r}")
        logger.debug("Using requested archive mode %s (%r)", requested.value, caps)
        return requested

    if caps.supports(ArchiveMode.UPDATABLE):
        mode = ArchiveMode.UPDATABLE
    elif caps.canWrite and allowCreate:
        mode = ArchiveMode.CREATE_ONLY
    elif caps.canRead and allowRead:
        mode = ArchiveMode.READ_ONLY
    else:
        raise InvalidArgumentError(failMessage)

    logger.debug("Resolved archive mode %s from %r", mode.value, caps)
    return mode



class _EntryWriter(io.BytesIO):
    """Buffers an entry of an updatable archive and commits it on close."""
    def __init__(self, archive: ZipEntryArchive, name: str):
        super().__init__()
        self._archive = archive
        self._name = name

    def close(self) -> None:
        if not self.closed:
            self._archive._commitEntry(self._name, self.getvalue())
        super().close()



class ZipEntryArchive:
    """
    Entry-level view over a zip archive held in a caller-owned byte stream.

    READ_ONLY archives read straight from the stream (buffered first if it can't seek).
    CREATE_ONLY archives stream new entries out as they are written.
    UPDATABLE archives hold every entry in memory and rewrite the stream on close if anything changed.

    The stream itself is never closed.
    """
    def __init__(self, stream: BinaryIO, mode: ArchiveMode):
        self._stream = stream
        self.mode = mode
        self._closed = False
        self._modified = False
        self._zip: zipfile.ZipFile | None = None
        self._entries: dict[str, bytes] = {}
        self._written: list[str] = []

        compressionName = setting("archive.compression", "deflated")
        if compressionName not in _COMPRESSION:
            raise InvalidArgumentError(f"Unknown archive compression {compressionName!r}")
        self._compression = _COMPRESSION[compressionName]
        self._compressLevel = setting("archive.compressLevel", None)

        if mode is ArchiveMode.READ_ONLY:
            source: IO[bytes] = stream
            if not streamCapabilities(stream).canSeek:
                source = io.BytesIO(stream.read())
            self._zip = self._openForReading(source)
        elif mode is ArchiveMode.CREATE_ONLY:
            self._zip = zipfile.ZipFile(stream, "w", compression=self._compression, compresslevel=self._compressLevel)
        else:
            self._entries = self._loadEntries()

    # ----- Internal -----

    @staticmethod
    def _openForReading(source: IO[bytes]) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(source, "r")
        except zipfile.BadZipFile as err:
            raise InvalidFormatError(f"Stream does not contain a valid zip archive: {err}") from err

    def _loadEntries(self) -> dict[str, bytes]:
        stream = self._stream
        stream.seek(0, io.SEEK_END)
        if stream.tell() == 0:
            # Empty stream: a brand new archive
            return {}

        stream.seek(0)
        entries: dict[str, bytes] = {}
        with self._openForReading(stream) as zf:
            for info in zf.infolist():
                entries[info.filename] = zf.read(info)
        logger.debug("Loaded %d archive entries into memory", len(entries))
        return entries

    def _commitEntry(self, name: str, data: bytes) -> None:
        self._entries[name] = data
        self._modified = True

    def _ensureOpen(self) -> None:
        if self._closed:
            raise InvalidOperationError("Archive has been closed")

    # ----- Entry operations -----

    def entryNames(self) -> list[str]:
        self._ensureOpen()
        if self.mode is ArchiveMode.READ_ONLY:
            assert self._zip is not None
            return self._zip.namelist()
        if self.mode is ArchiveMode.CREATE_ONLY:
            return list(self._written)
        return list(self._entries)

    def hasEntry(self, name: str) -> bool:
        self._ensureOpen()
        if self.mode is ArchiveMode.READ_ONLY:
            assert self._zip is not None
            try:
                self._zip.getinfo(name)
            except KeyError:
                return False
            return True
        if self.mode is ArchiveMode.CREATE_ONLY:
            return name in self._written
        return name in self._entries

    def openEntry(self, name: str) -> IO[bytes]:
        self._ensureOpen()
        if self.mode is ArchiveMode.CREATE_ONLY:
            raise InvalidOperationError("Cannot read entries of an archive in create mode")
        if self.mode is ArchiveMode.READ_ONLY:
            assert self._zip is not None
            try:
                return self._zip.open(name, "r")
            except KeyError:
                raise NotFoundError(f"Unable to find file with path {name} in archive", path=name) from None
        if name not in self._entries:
            raise NotFoundError(f"Unable to find file with path {name} in archive", path=name)
        return io.BytesIO(self._entries[name])

    def readEntry(self, name: str) -> bytes:
        with self.openEntry(name) as entryStream:
            return entryStream.read()

    def createEntry(self, name: str) -> IO[bytes]:
        """Returns a writable stream for a new entry. The entry exists once the stream is closed."""
        self._ensureOpen()
        if self.mode is ArchiveMode.READ_ONLY:
            raise InvalidOperationError("Cannot create entries in a read only archive")
        if self.hasEntry(name):
            raise InvalidArgumentError(f"Archive already contains an entry at {name}")
        if self.mode is ArchiveMode.CREATE_ONLY:
            assert self._zip is not None
            self._written.append(name)
            return self._zip.open(name, "w")
        return _EntryWriter(self, name)

    def deleteEntry(self, name: str) -> None:
        self._ensureOpen()
        if self.mode is not ArchiveMode.UPDATABLE:
            raise InvalidOperationError(f"Cannot delete entries of an archive in {self.mode.value} mode")
        if name not in self._entries:
            raise NotFoundError(f"Unable to find file with path {name} in archive", path=name)
        del self._entries[name]
        self._modified = True

    # ----- Lifecycle -----

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._zip is not None:
            self._zip.close()
            return

        if not self._modified:
            return
        stream = self._stream
        stream.seek(0)
        with zipfile.ZipFile(stream, "w", compression=self._compression, compresslevel=self._compressLevel) as zf:
            for name, data in self._entries.items():
                zf.writestr(name, data)
        stream.truncate()
        logger.debug("Rewrote archive with %d entries", len(self._entries))
