"""Community plugin index - browse and add plugins shared by the community."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from userscripts.catalog.reconciler import CatalogReconciler
from userscripts.catalog.records import Partition, PluginRecord
from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.constants import (
    COMMUNITY_BRANCH,
    COMMUNITY_INDEX_URL,
    COMMUNITY_REPOSITORY,
    RAW_CONTENT_URL,
    SCRIPT_METADATA_SUFFIX,
    USER_SCRIPT_SUFFIX,
)
from userscripts.errors import ResourceAccessError
from userscripts.external.access import FolderAccess
from userscripts.metadata.decoder import MetadataDecoder
from userscripts.metadata.models import PluginMetadata
from userscripts.sync.installer import AtomicInstaller
from userscripts.sync.transport import ScriptFetcher

logger = logging.getLogger(__name__)


@dataclass
class PluginPreview:
    """A community plugin as listed by the index."""

    author: str
    filename: str
    metadata: PluginMetadata
    anti_features: List[str] = field(default_factory=list)
    is_saved: bool = False

    @property
    def id(self) -> str:
        return f"{self.author}/{self.filename}"


class Sorting(str, Enum):
    BY_AUTHOR = "author"
    BY_CATEGORY = "category"
    BY_NAME = "name"


def sort_previews(previews: Iterable[PluginPreview], sorting: Sorting = Sorting.BY_NAME) -> List[PluginPreview]:
    """Sort previews by author (declared author first), category or name."""
    if sorting == Sorting.BY_AUTHOR:
        key = lambda p: p.metadata.author or p.author
    elif sorting == Sorting.BY_CATEGORY:
        key = lambda p: p.metadata.category.raw_value
    else:
        key = lambda p: p.metadata.name.casefold()
    return sorted(previews, key=key)


def filter_previews(
    previews: Iterable[PluginPreview],
    search_text: str = "",
    author: Optional[str] = None,
    category: Optional[str] = None,
    hide_saved: bool = False,
    exclude_anti_features: Iterable[str] = (),
) -> List[PluginPreview]:
    """Filter previews the way the plugin browser does.

    Every word of ``search_text`` is matched case-insensitively against the
    name and description; a preview matches when any word hits.
    """
    words = [w.lower() for w in search_text.split() if w]
    excluded = set(exclude_anti_features)
    result = []
    for preview in previews:
        if hide_saved and preview.is_saved:
            continue
        if author is not None and preview.author != author:
            continue
        if category is not None and preview.metadata.category.raw_value != category:
            continue
        if excluded.intersection(preview.anti_features):
            continue
        if words:
            name = preview.metadata.name.lower()
            description = (preview.metadata.description or "").lower()
            if not any(word in name or word in description for word in words):
                continue
        result.append(preview)
    return result


def _parse_index(index: Dict[str, Any]) -> List[tuple]:
    """Flatten the index into (author, filename, anti_features) entries.

    Items are either plain filenames or {"filename": ..., "antiFeatures": [...]}.
    """
    entries = []
    for author, items in index.items():
        for item in items:
            if isinstance(item, str):
                entries.append((author, item, []))
            elif isinstance(item, dict) and isinstance(item.get("filename"), str):
                entries.append((author, item["filename"], list(item.get("antiFeatures") or [])))
            else:
                logger.warning(f"[Community] Ignoring malformed index entry for {author}: {item!r}")
    return entries


class CommunityIndex:
    """Client of the community plugin index."""

    def __init__(
        self,
        store: CatalogStore,
        settings: SettingsService,
        fetcher: Optional[ScriptFetcher] = None,
        access_factory: Callable[[Path], FolderAccess] = FolderAccess,
        index_url: str = COMMUNITY_INDEX_URL,
        repository: str = COMMUNITY_REPOSITORY,
        branch: str = COMMUNITY_BRANCH,
        raw_content_url: str = RAW_CONTENT_URL,
    ):
        self.store = store
        self.settings = settings
        self.fetcher = fetcher or ScriptFetcher()
        self.access_factory = access_factory
        self.index_url = index_url
        self.repository = repository
        self.branch = branch
        self.raw_content_url = raw_content_url.rstrip("/")

    def raw_url(self, author: str, filename: str, suffix: str) -> str:
        """{raw}/{repo}/{branch}/dist/{author}/{filename}{suffix}"""
        return f"{self.raw_content_url}/{self.repository}/{self.branch}/dist/{author}/{filename}{suffix}"

    def is_existing_plugin(self, identifier: str) -> bool:
        return self.store.count(lambda r: not r.is_internal and r.identifier == identifier) > 0

    async def fetch_previews(self, sorting: Sorting = Sorting.BY_NAME) -> List[PluginPreview]:
        """Fetch the index and every listed plugin's metadata concurrently.

        Plugins whose metadata cannot be fetched or decoded are left out.

        Raises:
            TransportError: the index itself could not be fetched
        """
        index = await self.fetcher.fetch_json(self.index_url)
        entries = _parse_index(index)
        results = await asyncio.gather(
            *(self._fetch_preview(author, filename, anti) for author, filename, anti in entries)
        )
        previews = [p for p in results if p is not None]
        logger.info(f"[Community] Listed {len(previews)}/{len(entries)} plugin(s)")
        return sort_previews(previews, sorting)

    async def _fetch_preview(self, author: str, filename: str, anti_features: List[str]) -> Optional[PluginPreview]:
        url = self.raw_url(author, filename, SCRIPT_METADATA_SUFFIX)
        try:
            content = await self.fetcher.fetch_text(url)
            metadata = MetadataDecoder().decode(PluginMetadata, content)
        except Exception as e:
            logger.warning(f"[Community] Skipping {author}/{filename}: {e}")
            return None
        return PluginPreview(
            author=author,
            filename=filename,
            metadata=metadata,
            anti_features=anti_features,
            is_saved=self.is_existing_plugin(metadata.id),
        )

    async def save(self, preview: PluginPreview) -> PluginRecord:
        """Download a community plugin into the external folder and catalog it.

        Raises:
            ResourceAccessError: no external folder, or it is inaccessible
            TransportError, MetadataSyntaxError, MetadataDecodeError,
            FileSystemError: the install failed
        """
        folder = self.settings.external_folder
        if folder is None:
            raise ResourceAccessError("External folder is not configured")

        with self.access_factory(folder).access() as granted:
            metadata = await AtomicInstaller(self.fetcher).install(
                self.raw_url(preview.author, preview.filename, USER_SCRIPT_SUFFIX),
                granted / (preview.filename + USER_SCRIPT_SUFFIX),
                lambda content: MetadataDecoder().decode_script(PluginMetadata, content),
            )

        record = CatalogReconciler(self.store).upsert_one(
            Partition.EXTERNAL, metadata.id, metadata, filename=preview.filename
        )
        self.store.save()
        preview.is_saved = True
        logger.info(f"[Community] Added {preview.id} as '{record.identifier}'")
        return record
