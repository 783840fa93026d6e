# qmod/manifest.py
from __future__ import annotations
import inspect
import json
import logging
from typing import Any, BinaryIO

from pydantic import Field, ValidationError, field_serializer, field_validator
from semantic_version import Version

from qmod.errors import InvalidFormatError, UnsupportedSchemaVersionError
from qmod.schema import (
    CURRENT_SCHEMA_VERSION,
    SUPPORTED_SCHEMA_VERSIONS,
    SchemaValidationError,
    validateManifestDocument,
)
from qmod.settings import setting
from qmod.types import (
    QModModel,
    ModLoader,
    FileCopy,
    CopyExtension,
    Dependency,
    describeValidationError,
)
from qmod.validation import validateId, parseVersion

logger = logging.getLogger(__name__)

__all__ = ["Manifest", "SCHEMA_VERSION_KEY"]



SCHEMA_VERSION_KEY = "_QPVersion"



class Manifest(QModModel):
    """
    The `mod.json` document of a QMOD.

    Fields are declared in the order they are written. Optional fields that are None
    are left out of the serialized document.
    """
    schemaVersion: str = Field(default=CURRENT_SCHEMA_VERSION, alias=SCHEMA_VERSION_KEY, frozen=True)
    id: str                                     # No whitespace; two mods with the same ID cannot be installed
    name: str                                   # Human-readable name
    author: str
    version: Version
    packageId: str | None = None                # App the mod is for; None means any app
    packageVersion: str | None = None           # App version the mod is for; meaningless without packageId
    modLoader: ModLoader = Field(default=ModLoader.QuestLoader, alias="modloader")
    modFiles: list[str] = Field(default_factory=list)       # Copied to the early mods directory
    lateModFiles: list[str] = Field(default_factory=list)   # Copied to the late mods directory
    libraryFiles: list[str] = Field(default_factory=list)   # Copied to the libraries directory
    fileCopies: list[FileCopy] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)
    copyExtensions: list[CopyExtension] = Field(default_factory=list)
    description: str | None = None
    coverImagePath: str | None = Field(default=None, alias="coverImage")
    porter: str | None = None                   # Author of the port, if ported from another platform
    isLibrary: bool = False                     # Library mods get uninstalled once nothing depends on them

    def __init__(self, /, **data: Any):
        stated = data.get(SCHEMA_VERSION_KEY, data.get("schemaVersion"))
        if stated is not None and stated not in SUPPORTED_SCHEMA_VERSIONS:
            raise UnsupportedSchemaVersionError(str(stated))
        super().__init__(**data)

    # ----- Construction -----

    @classmethod
    def create(
        cls,
        id: str,
        name: str | None,
        version: str | Version,
        packageId: str | None,
        packageVersion: str | None,
        author: str,
    ) -> Manifest:
        """
        Creates a manifest stamped with the current schema version and no files.
        If `name` is None the ID is used as the name.
        """
        return cls(
            id=id,
            name=id if name is None else name,
            version=version,
            packageId=packageId,
            packageVersion=packageVersion,
            author=author,
        )

    def deepClone(self) -> Manifest:
        """Copy sharing no lists or nested records with this manifest."""
        return self.model_copy(deep=True)

    def shallowClone(self) -> Manifest:
        """Copy aliasing this manifest's lists. Only for callers that won't mutate either side."""
        return self.model_copy()

    @property
    def versionString(self) -> str:
        return str(self.version)

    # ----- Parsing -----

    @classmethod
    def parse(cls, data: bytes | str | BinaryIO) -> Manifest:
        """
        Parses and schema-validates a manifest.

        Raises:
            InvalidFormatError: the bytes are not JSON, or the document breaks the schema.
            UnsupportedSchemaVersionError: the document declares a `_QPVersion` that isn't supported.
        """
        if not isinstance(data, (bytes, bytearray, str)):
            data = data.read()

        try:
            document = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            raise InvalidFormatError(f"Invalid JSON in manifest: {err}") from err

        return cls.fromDocument(document)

    @classmethod
    async def parseAsync(cls, source: Any) -> Manifest:
        """Like parse(), for sources whose read() may be a coroutine."""
        data = source.read()
        if inspect.isawaitable(data):
            data = await data
        return cls.parse(data)

    @classmethod
    def fromDocument(cls, document: Any) -> Manifest:
        try:
            validateManifestDocument(document)
        except SchemaValidationError as err:
            # A wrong _QPVersion is the most likely reason for the schema failing, and the more useful one to report
            if isinstance(document, dict):
                stated = document.get(SCHEMA_VERSION_KEY)
                if isinstance(stated, str) and stated not in SUPPORTED_SCHEMA_VERSIONS:
                    raise UnsupportedSchemaVersionError(stated) from err
            raise InvalidFormatError(f"QMOD schema validation failed: {err}") from err

        try:
            manifest = cls.model_validate(document)
        except ValidationError as err:
            raise InvalidFormatError(f"QMOD manifest is invalid: {describeValidationError(err)}") from err

        logger.debug(
            "Parsed manifest id=%s version=%s schemaVersion=%s",
            manifest.id, manifest.version, manifest.schemaVersion,
        )
        return manifest

    # ----- Serialization -----

    def toDocument(self) -> dict[str, Any]:
        document = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        document[SCHEMA_VERSION_KEY] = CURRENT_SCHEMA_VERSION
        return document

    def serialize(self) -> bytes:
        indent = setting("manifest.indent", 2)
        return json.dumps(self.toDocument(), indent=indent, ensure_ascii=False).encode("utf-8")

    def save(self, stream: BinaryIO) -> None:
        stream.write(self.serialize())

    # --------------
    #   Validators
    # --------------
    @field_validator("id", mode="before")
    @classmethod
    def _checkId(cls, value: Any) -> str:
        return validateId(value)

    @field_validator("version", mode="before")
    @classmethod
    def _parseVersion(cls, value: Any) -> Version:
        return parseVersion(value)

    @field_validator("modLoader", mode="before")
    @classmethod
    def _decodeModLoader(cls, value: Any) -> ModLoader:
        return ModLoader.decode(value)

    @field_serializer("version")
    def _dumpVersion(self, value: Version) -> str:
        return str(value)

    @field_serializer("modLoader")
    def _dumpModLoader(self, value: ModLoader) -> str:
        return value.value
