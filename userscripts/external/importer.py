"""Plugin importer - adds a user-supplied plugin to the external folder."""

import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlsplit

from userscripts.catalog.reconciler import CatalogReconciler
from userscripts.catalog.records import Partition, PluginRecord
from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.constants import USER_SCRIPT_SUFFIX
from userscripts.errors import ResourceAccessError
from userscripts.external.access import FolderAccess
from userscripts.metadata.decoder import MetadataDecoder
from userscripts.metadata.models import PluginMetadata
from userscripts.sync.installer import write_atomically
from userscripts.sync.transport import ScriptFetcher

logger = logging.getLogger(__name__)


_SCHEME_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9+.-]*://")


def normalize_url(url: str) -> str:
    """Strip ``url`` and default to https when it carries no scheme."""
    url = url.strip()
    if not _SCHEME_PATTERN.match(url):
        url = "https://" + url
    return url


def filename_from_url(url: str) -> str:
    """Derive the storage filename (no extension) from a script URL.

    A URL typed without a scheme is read as https.

    Raises:
        ValueError: the URL has no usable last path component
    """
    url = normalize_url(url)
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid plugin URL: {url}")
    filename = unquote(posixpath.basename(parts.path)).replace(USER_SCRIPT_SUFFIX, "")
    if not filename:
        raise ValueError(f"Invalid plugin URL: {url}")
    return filename


@dataclass
class PluginCandidate:
    """A decoded plugin waiting to be saved into the external folder."""

    filename: str
    metadata: PluginMetadata
    content: str


class PluginImporter:
    """Adds plugins from a remote URL or from pasted code."""

    def __init__(
        self,
        store: CatalogStore,
        settings: SettingsService,
        fetcher: Optional[ScriptFetcher] = None,
        access_factory: Callable[[Path], FolderAccess] = FolderAccess,
    ):
        self.store = store
        self.settings = settings
        self.fetcher = fetcher or ScriptFetcher()
        self.access_factory = access_factory

    async def from_url(self, url: str) -> PluginCandidate:
        """Download and decode a plugin.

        Raises:
            ValueError: invalid URL; one without a scheme is fetched over https
            TransportError: non-200 response
            MetadataSyntaxError, MetadataDecodeError: not a valid plugin
        """
        url = normalize_url(url)
        filename = filename_from_url(url)
        content = await self.fetcher.fetch_text(url)
        metadata = MetadataDecoder().decode(PluginMetadata, content)
        logger.info(f"Fetched plugin '{metadata.id}' from {url}")
        return PluginCandidate(filename=filename, metadata=metadata, content=content)

    def from_code(self, code: str, filename: str) -> PluginCandidate:
        """Decode pasted code to be saved as ``filename``.

        Raises:
            ValueError: empty filename
            MetadataSyntaxError, MetadataDecodeError: not a valid plugin
        """
        filename = filename.strip().replace(USER_SCRIPT_SUFFIX, "")
        if not filename or "/" in filename or "\\" in filename:
            raise ValueError(f"Invalid filename: {filename!r}")
        metadata = MetadataDecoder().decode(PluginMetadata, code)
        return PluginCandidate(filename=filename, metadata=metadata, content=code)

    def save(self, candidate: PluginCandidate) -> PluginRecord:
        """Write the candidate into the external folder and catalog it.

        Raises:
            ResourceAccessError: no external folder, or it is inaccessible
            FileSystemError: the file could not be written
        """
        folder = self.settings.external_folder
        if folder is None:
            raise ResourceAccessError("External folder is not configured")

        with self.access_factory(folder).access() as granted:
            destination = granted / (candidate.filename + USER_SCRIPT_SUFFIX)
            write_atomically(destination, candidate.content)

        record = CatalogReconciler(self.store).upsert_one(
            Partition.EXTERNAL, candidate.metadata.id, candidate.metadata, filename=candidate.filename
        )
        self.store.save()
        logger.info(f"Saved plugin '{record.identifier}' as {candidate.filename}{USER_SCRIPT_SUFFIX}")
        return record
