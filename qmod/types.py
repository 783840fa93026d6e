# qmod/types.py
from __future__ import annotations
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from semantic_version import NpmSpec

from qmod.errors import InvalidArgumentError
from qmod.validation import validateId, parseVersionRange, parseDownloadUri

__all__ = [
    "QModModel",
    "describeValidationError",
    "ModLoader",
    "FileCopy",
    "CopyExtension",
    "Dependency",
]



def describeValidationError(err: ValidationError) -> str:
    """Flattens a pydantic ValidationError into a single readable line."""
    parts: list[str] = []
    for item in err.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts) or str(err)



class QModModel(BaseModel):
    """
    Base for every manifest model.

    Assignments are validated, and validation failures surface as InvalidArgumentError
    so callers never have to know that pydantic is doing the work underneath.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        validate_assignment=True,
        arbitrary_types_allowed=True,
        extra="ignore",
    )

    def __init__(self, /, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as err:
            raise InvalidArgumentError(describeValidationError(err)) from err

    def __setattr__(self, name: str, value: Any) -> None:
        try:
            super().__setattr__(name, value)
        except ValidationError as err:
            raise InvalidArgumentError(describeValidationError(err)) from err



class ModLoader(str, Enum):
    """Mod loader a package targets. Serialized by name."""
    QuestLoader = "QuestLoader"
    Scotland2 = "Scotland2"

    @classmethod
    def decode(cls, raw: Any) -> ModLoader:
        """
        Case-insensitive match against the known loaders.
        Unknown or missing values fall back to QuestLoader instead of failing,
        so manifests written for newer or older loaders still open.
        """
        if isinstance(raw, ModLoader):
            return raw
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return cls.QuestLoader



class FileCopy(QModModel):
    """
    A file inside the archive (`name`, the origin) copied to `destination` on install.
    Several records may share the same origin; a record is identified by both fields.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    destination: str

    def __init__(self, name: str, destination: str, **data: Any):
        super().__init__(name=name, destination=destination, **data)



class CopyExtension(QModModel):
    """Registers every file with `extension` (no leading period) to be copied into `destination`."""
    extension: str
    destination: str

    def __init__(self, extension: str, destination: str, **data: Any):
        super().__init__(extension=extension, destination=destination, **data)

    @field_validator("extension", mode="before")
    @classmethod
    def _stripPeriod(cls, value: Any) -> Any:
        if isinstance(value, str) and value.startswith("."):
            return value[1:]
        return value



class Dependency(QModModel):
    id: str
    versionRange: NpmSpec = Field(alias="version")
    downloadIfMissing: str | None = None
    required: bool = True

    def __init__(
        self,
        id: str,
        versionRange: str | NpmSpec = "*",
        downloadIfMissing: str | None = None,
        required: bool = True,
        **data: Any,
    ):
        super().__init__(
            id=id,
            versionRange=versionRange,
            downloadIfMissing=downloadIfMissing,
            required=required,
            **data,
        )

    @property
    def versionRangeString(self) -> str:
        return str(self.versionRange)

    # --------------
    #   Validators
    # --------------
    @field_validator("id", mode="before")
    @classmethod
    def _checkId(cls, value: Any) -> str:
        return validateId(value)

    @field_validator("versionRange", mode="before")
    @classmethod
    def _parseRange(cls, value: Any) -> NpmSpec:
        return parseVersionRange(value)

    @field_validator("downloadIfMissing", mode="before")
    @classmethod
    def _parseUri(cls, value: Any) -> str | None:
        return parseDownloadUri(value)

    @field_serializer("versionRange")
    def _dumpRange(self, value: NpmSpec) -> str:
        return str(value)
