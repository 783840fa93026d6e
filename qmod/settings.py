# qmod/settings.py
from __future__ import annotations
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

import json5
from pydantic import JsonValue

import logging
logger = logging.getLogger(__name__)

__all__ = [
    "SETTINGS", "SETTINGS_ENV_VAR", "userSettingsPath", "loadUserSettings",
    "loadSettings", "deepMerge", "setting", "settingBool",
]



SETTINGS_ENV_VAR = "QMOD_SETTINGS"
SETTINGS: JsonValue = {
    "__source": "QMOD_DEFAULTS",
    "archive": {"compression": "deflated", "compressLevel": None},
    "manifest": {"indent": 2},
    "open": {"failOnMissingStatedFile": True, "failOnMissingStatedCover": False},
}



def userSettingsPath() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(os.path.expanduser(override))
    return Path(os.path.expanduser("~/.qmod/qmod.json5"))



def loadUserSettings() -> JsonValue:
    filePath = userSettingsPath()
    if filePath.exists():
        try:
            return json5.loads(filePath.read_text(encoding="utf-8"))
        except Exception as err:
            logger.error("Failed to parse '%s': %s", filePath, err)
    return {}



@lru_cache(maxsize=1)
def loadSettings() -> JsonValue:
    return deepMerge(SETTINGS, loadUserSettings())



def deepMerge(first: JsonValue, second: JsonValue) -> JsonValue:
    """
    Returns a new JsonValue where keys from `second` override/extend `first`.
    Only merges recursively when BOTH sides are JSON objects (dicts).
    For all other JSON types the right-hand value `second` replaces `first`.
    """
    if isinstance(first, dict) and isinstance(second, dict):
        out: dict[str, JsonValue] = dict(first)
        for key, value in second.items():
            if key in out:
                out[key] = deepMerge(out[key], cast(JsonValue, value))
            else:
                out[key] = cast(JsonValue, value)
        return cast(JsonValue, out)

    return cast(JsonValue, second)



def _getByPath(data: Any, path: str) -> Any:
    node = data
    for segment in path.split("."):
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node

# ---------- Ergonomic accessors over merged settings ----------

def setting(path: str, default: Any = None) -> Any:
    """Returns value at dotted `path` from merged settings, or `default` if missing."""
    val = _getByPath(loadSettings(), path)
    return default if val is None else val



def settingBool(path: str, default: bool = False) -> bool:
    val = _getByPath(loadSettings(), path)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)
