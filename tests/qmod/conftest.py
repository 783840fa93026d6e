import io
import json
import zipfile
from typing import Any, Callable

import pytest

from qmod.settings import SETTINGS_ENV_VAR, loadSettings



class StreamWrapper(io.BytesIO):
    """In-memory stream that can pretend not to support reading, writing or seeking."""
    def __init__(self, data: bytes = b"", *, canRead: bool = True, canWrite: bool = True, canSeek: bool = True):
        super().__init__(data)
        self.canRead = canRead
        self.canWrite = canWrite
        self.canSeek = canSeek

    def readable(self) -> bool:
        return self.canRead

    def writable(self) -> bool:
        return self.canWrite

    def seekable(self) -> bool:
        return self.canSeek

    def read(self, size: int | None = -1) -> bytes:
        if not self.canRead:
            raise io.UnsupportedOperation("read")
        return super().read(size)

    def write(self, data) -> int:
        if not self.canWrite:
            raise io.UnsupportedOperation("write")
        return super().write(data)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if not self.canSeek:
            raise io.UnsupportedOperation("seek")
        return super().seek(offset, whence)

    def tell(self) -> int:
        if not self.canSeek:
            raise io.UnsupportedOperation("tell")
        return super().tell()



def _baseDocument() -> dict[str, Any]:
    return {
        "_QPVersion": "1.0.0",
        "id": "test-mod",
        "name": "Test Mod",
        "author": "Tester",
        "version": "1.0.0",
        "packageId": "com.beatgames.beatsaber",
        "packageVersion": "1.28.0",
    }



def _buildArchive(entries: dict[str, Any]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in entries.items():
            if isinstance(content, dict):
                content = json.dumps(content)
            if isinstance(content, str):
                content = content.encode("utf-8")
            zf.writestr(name, content)
    return buffer.getvalue()



def _readArchive(data: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}



@pytest.fixture(autouse=True)
def isolatedSettings(monkeypatch, tmp_path):
    # Never pick up the real user's ~/.qmod settings
    monkeypatch.setenv(SETTINGS_ENV_VAR, str(tmp_path / "missing-settings.json5"))
    loadSettings.cache_clear()
    yield
    loadSettings.cache_clear()


@pytest.fixture()
def streamWrapper() -> type[StreamWrapper]:
    return StreamWrapper


@pytest.fixture()
def baseDocument() -> dict[str, Any]:
    return _baseDocument()


@pytest.fixture()
def buildArchive() -> Callable[[dict[str, Any]], bytes]:
    """Builds zip bytes from {name: bytes | str | dict}. Dicts are written as JSON."""
    return _buildArchive


@pytest.fixture()
def readArchive() -> Callable[[bytes], dict[str, bytes]]:
    return _readArchive
