# qmod/schema.py
from __future__ import annotations
import json
import logging
from functools import lru_cache
from importlib.resources import files
from typing import Any, TypeAlias, Callable, cast

import fastjsonschema

logger = logging.getLogger(__name__)

__all__ = [
    "SUPPORTED_SCHEMA_VERSIONS",
    "CURRENT_SCHEMA_VERSION",
    "SchemaValidationError",
    "loadManifestSchema",
    "getManifestValidator",
    "validateManifestDocument",
]



JSONSchemaRoot: TypeAlias = dict[str, Any] | bool
ValidatorFn: TypeAlias = Callable[[Any], Any]

# QMOD schema versions that are loadable. Kept in sync with the `_QPVersion` enum in the schema.
SUPPORTED_SCHEMA_VERSIONS: frozenset[str] = frozenset({
    "0.1.0",
    "0.1.1",
    "0.1.2",
    "1.0.0",
    "1.1.0",
    "1.2.0",
})

# Stamped into every manifest this library writes, regardless of the version it was read as.
CURRENT_SCHEMA_VERSION = "1.2.0"

_SCHEMA_RESOURCE = "resources/qmod.schema.json"



class SchemaValidationError(Exception):
    def __init__(self, message: str, *, location: str | None = None):
        super().__init__(message)
        self.location = location



@lru_cache(maxsize=1)
def loadManifestSchema() -> JSONSchemaRoot:
    """Reads the bundled QMOD schema (draft-07) from package data."""
    text = files("qmod").joinpath(_SCHEMA_RESOURCE).read_text(encoding="utf-8")
    data = json.loads(text)
    if not isinstance(data, (dict, bool)):
        raise TypeError(f"Top-level of '{_SCHEMA_RESOURCE}' must be a JSON object or boolean schema")
    return cast(JSONSchemaRoot, data)



@lru_cache(maxsize=1)
def getManifestValidator() -> ValidatorFn:
    schema = loadManifestSchema()
    # fastjsonschema.compile returns an untyped callable → cast it
    validator = cast(ValidatorFn, fastjsonschema.compile(schema))
    logger.debug("Compiled QMOD manifest schema")
    return validator



def validateManifestDocument(document: Any) -> None:
    """Raises SchemaValidationError if `document` does not match the QMOD schema."""
    validator = getManifestValidator()
    try:
        validator(document)
    except fastjsonschema.JsonSchemaValueException as err:
        raise SchemaValidationError(f"{err.name}: {err.message}", location=err.name) from err
