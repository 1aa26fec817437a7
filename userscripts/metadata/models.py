"""Typed metadata records projected from a userscript header block."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from userscripts.errors import DecodeReason, MetadataDecodeError


class DefaultCategory(str, Enum):
    """Closed set of well-known plugin categories."""

    CACHE = "Cache"
    CONTROLS = "Controls"
    DEBUG = "Debug"
    DRAW = "Draw"
    HIGHLIGHTER = "Highlighter"
    INFO = "Info"
    LAYER = "Layer"
    MAP_TILES = "Map Tiles"
    MISC = "Misc"
    PORTAL_INFO = "Portal Info"
    TWEAKS = "Tweaks"


@dataclass(frozen=True)
class Category:
    """A plugin category: one of DefaultCategory, or a customized label.

    Any string is accepted; the raw value always round-trips.
    """

    raw_value: str

    @classmethod
    def from_raw(cls, value: str) -> "Category":
        return cls(raw_value=value)

    @classmethod
    def of(cls, value: DefaultCategory) -> "Category":
        return cls(raw_value=value.value)

    @property
    def default(self) -> Optional[DefaultCategory]:
        try:
            return DefaultCategory(self.raw_value)
        except ValueError:
            return None

    @property
    def is_customized(self) -> bool:
        return self.default is None

    @classmethod
    def all_defaults(cls) -> list["Category"]:
        return [cls.of(value) for value in DefaultCategory]

    def __str__(self) -> str:
        return self.raw_value


def require_value(items: Mapping[str, str], key: str, convert: Callable[[str], Any] = str) -> Any:
    """Read a required key and convert it.

    Raises:
        MetadataDecodeError: KEY_NOT_FOUND when absent, TYPE_MISMATCH when
            ``convert`` rejects the raw value.
    """
    if key not in items:
        raise MetadataDecodeError(DecodeReason.KEY_NOT_FOUND, key)
    return _convert(items[key], key, convert)


def optional_value(items: Mapping[str, str], key: str, convert: Callable[[str], Any] = str) -> Any:
    """Read an optional key; absent keys yield None."""
    if key not in items:
        return None
    return _convert(items[key], key, convert)


def _convert(raw: str, key: str, convert: Callable[[str], Any]) -> Any:
    try:
        return convert(raw)
    except (TypeError, ValueError) as e:
        raise MetadataDecodeError(DecodeReason.TYPE_MISMATCH, key, str(e)) from e


class MainScriptMetadata(BaseModel):
    """Metadata of the main script."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Script name")
    description: Optional[str] = Field(default=None, description="Script description")
    version: str = Field(..., description="Script version")

    @classmethod
    def from_items(cls, items: Mapping[str, str]) -> "MainScriptMetadata":
        return cls(
            name=require_value(items, "name"),
            description=optional_value(items, "description"),
            version=require_value(items, "version"),
        )

    def to_items(self) -> Dict[str, str]:
        items = {"name": self.name, "version": self.version}
        if self.description is not None:
            items["description"] = self.description
        return items


class PluginMetadata(BaseModel):
    """Metadata of a plugin, as declared in its header block."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(..., description="Declared plugin identifier")
    name: str = Field(..., description="Human-readable plugin name")
    category: Category = Field(..., description="Plugin category")
    author: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    download_url: Optional[str] = Field(default=None, description="Header key: downloadURL")
    update_url: Optional[str] = Field(default=None, description="Header key: updateURL")
    homepage_url: Optional[str] = Field(default=None, description="Header key: homepageURL")

    # Field name -> header key, for the optional string fields
    OPTIONAL_KEYS: ClassVar[Dict[str, str]] = {
        "author": "author",
        "description": "description",
        "version": "version",
        "download_url": "downloadURL",
        "update_url": "updateURL",
        "homepage_url": "homepageURL",
    }

    @classmethod
    def from_items(cls, items: Mapping[str, str]) -> "PluginMetadata":
        optionals = {
            field_name: optional_value(items, key)
            for field_name, key in cls.OPTIONAL_KEYS.items()
        }
        return cls(
            id=require_value(items, "id"),
            name=require_value(items, "name"),
            category=require_value(items, "category", Category.from_raw),
            **optionals,
        )

    def to_items(self) -> Dict[str, str]:
        items = {"id": self.id, "name": self.name, "category": self.category.raw_value}
        for field_name, key in self.OPTIONAL_KEYS.items():
            value = getattr(self, field_name)
            if value is not None:
                items[key] = value
        return items


class VersionProbe(BaseModel):
    """Minimal shape decoded from a `.meta.js` sidecar."""

    model_config = ConfigDict(frozen=True)

    version: str

    @classmethod
    def from_items(cls, items: Mapping[str, str]) -> "VersionProbe":
        return cls(version=require_value(items, "version"))
