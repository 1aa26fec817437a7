"""Catalog records - one entry per plugin known to the stack."""
from __future__ import annotations

import re
import uuid as uuid_lib
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from userscripts.constants import USER_SCRIPT_SUFFIX
from userscripts.metadata.models import Category, PluginMetadata

_DISPLAY_NAME_PREFIX = re.compile(r"^ *IITC +Plugin: *", re.IGNORECASE)


class Partition(str, Enum):
    """Catalog namespaces with different identity rules."""

    INTERNAL = "internal"   # keyed by filename, pinned by the bundled manifest
    EXTERNAL = "external"   # keyed by identifier, lives in the user's folder

    @property
    def is_internal(self) -> bool:
        return self == Partition.INTERNAL


@dataclass
class PluginRecord:
    """A persisted catalog entry."""

    identifier: str
    name: str
    category_value: str
    is_internal: bool
    filename: str
    enabled: bool = False
    author: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    download_url: Optional[str] = None
    update_url: Optional[str] = None
    uuid: str = field(default_factory=lambda: str(uuid_lib.uuid4()))

    @classmethod
    def from_metadata(cls, metadata: PluginMetadata, is_internal: bool, filename: str) -> PluginRecord:
        record = cls(
            identifier=metadata.id,
            name=metadata.name,
            category_value=metadata.category.raw_value,
            is_internal=is_internal,
            filename=filename,
        )
        record.update_from(metadata)
        return record

    def update_from(self, metadata: PluginMetadata, keep_identifier: bool = False) -> None:
        """Overwrite the metadata-derived fields in place."""
        if not keep_identifier:
            self.identifier = metadata.id
        self.name = metadata.name
        self.category_value = metadata.category.raw_value
        self.author = metadata.author
        self.description = metadata.description
        self.version = metadata.version
        self.download_url = metadata.download_url
        self.update_url = metadata.update_url

    @property
    def partition(self) -> Partition:
        return Partition.INTERNAL if self.is_internal else Partition.EXTERNAL

    @property
    def category(self) -> Category:
        return Category.from_raw(self.category_value)

    @category.setter
    def category(self, value: Category) -> None:
        self.category_value = value.raw_value

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAME_PREFIX.sub("", self.name, count=1)

    @property
    def filename_with_extension(self) -> str:
        return self.filename + USER_SCRIPT_SUFFIX

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the catalog file and API-style listings."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PluginRecord:
        return cls(**data)
