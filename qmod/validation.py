# qmod/validation.py
from __future__ import annotations
import re
from typing import Any
from urllib.parse import urlsplit

from semantic_version import Version, NpmSpec

__all__ = [
    "containsWhitespace",
    "validateId",
    "parseVersion",
    "parseVersionRange",
    "parseDownloadUri",
]



_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
# Schemes whose URIs are meaningless without an authority ("https:/host" is a typo, not a path)
_AUTHORITY_SCHEMES = frozenset({"http", "https", "ftp", "ftps", "ws", "wss"})



def containsWhitespace(value: str) -> bool:
    return any(ch.isspace() for ch in value)



def validateId(value: Any) -> str:
    """Mod and dependency IDs are non-empty strings without any whitespace."""
    if not isinstance(value, str):
        raise ValueError(f"ID must be a string, got {type(value).__name__}")
    if not value:
        raise ValueError("ID cannot be empty")
    if containsWhitespace(value):
        raise ValueError(f"Cannot set ID to a value containing whitespace ({value!r})")
    return value



def parseVersion(value: Any) -> Version:
    if isinstance(value, Version):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Version must be a string or Version, got {type(value).__name__}")
    try:
        return Version(value)
    except ValueError as err:
        raise ValueError(f"Invalid semantic version {value!r}: {err}") from err



def parseVersionRange(value: Any) -> NpmSpec:
    if isinstance(value, NpmSpec):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Version range must be a string or NpmSpec, got {type(value).__name__}")
    try:
        return NpmSpec(value)
    except ValueError as err:
        raise ValueError(f"Invalid version range {value!r}: {err}") from err



def parseDownloadUri(value: Any) -> str | None:
    """
    Strictly checks an absolute URI and returns it unchanged.

    Accepted:
        "https://somesite.com/my_dependency_0_1_0.qmod"
        "file:///sdcard/mods/dep.qmod"
    Rejected:
        "https:/example.com"    (missing authority)
        "example.com/dep.qmod"  (no scheme)
        "https://exa mple.com"  (whitespace)
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Download URI must be a string, got {type(value).__name__}")
    if not value or containsWhitespace(value):
        raise ValueError(f"Could not parse dependency URL {value!r}")

    try:
        parts = urlsplit(value)
        # Accessing the port validates it
        parts.port
    except ValueError as err:
        raise ValueError(f"Could not parse dependency URL {value!r}") from err

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme) or "://" not in value and not parts.path:
        raise ValueError(f"Could not parse dependency URL {value!r}")
    if parts.scheme.lower() in _AUTHORITY_SCHEMES and not parts.hostname:
        raise ValueError(f"Could not parse dependency URL {value!r}: missing host")
    return value
