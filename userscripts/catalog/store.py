"""Catalog store - keyed record store persisted to catalog.json."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from userscripts.catalog.records import PluginRecord
from userscripts.errors import FileSystemError

logger = logging.getLogger(__name__)

Predicate = Callable[[PluginRecord], bool]


def is_external(record: PluginRecord) -> bool:
    return not record.is_internal


def is_internal(record: PluginRecord) -> bool:
    return record.is_internal


class CatalogStore:
    """Manages the catalog file.

    Mutations apply to the in-memory working set and become durable on
    ``save()``.

    File format:
    {
        "version": 1,
        "plugins": [
            {"identifier": "bookmarks", "filename": "bookmarks", "is_internal": true, ...}
        ]
    }
    """

    FORMAT_VERSION = 1

    def __init__(self, catalog_file: Path):
        self.catalog_file = catalog_file
        self._lock = threading.RLock()
        self._records: List[PluginRecord] = self._load()
        self._dirty = False

    def _load(self) -> List[PluginRecord]:
        """Load records from file, starting empty if not found."""
        if self.catalog_file.exists():
            try:
                with open(self.catalog_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                return [PluginRecord.from_dict(item) for item in data.get("plugins", [])]
            except (json.JSONDecodeError, IOError, TypeError) as e:
                logger.error(f"Error loading catalog: {e}")

        return []

    def save(self) -> None:
        """Persist the working set (write to a temp file, then replace)."""
        with self._lock:
            payload: Dict[str, Any] = {
                "version": self.FORMAT_VERSION,
                "plugins": [record.to_dict() for record in self._records],
            }
            try:
                self.catalog_file.parent.mkdir(parents=True, exist_ok=True)
                fd, temp_path = tempfile.mkstemp(
                    dir=self.catalog_file.parent, prefix=".catalog-", suffix=".json"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(payload, f, indent=2, ensure_ascii=False)
                    os.replace(temp_path, self.catalog_file)
                except BaseException:
                    Path(temp_path).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise FileSystemError(f"Unable to save catalog to {self.catalog_file}: {e}") from e
            self._dirty = False
        logger.debug(f"Saved catalog ({len(payload['plugins'])} records) to {self.catalog_file}")

    def reload(self) -> None:
        """Reload records from disk, dropping unsaved changes."""
        with self._lock:
            self._records = self._load()
            self._dirty = False

    def fetch(self, predicate: Optional[Predicate] = None, limit: Optional[int] = None) -> List[PluginRecord]:
        """Fetch records matching ``predicate`` (all records if None)."""
        with self._lock:
            result = [r for r in self._records if predicate is None or predicate(r)]
        return result[:limit] if limit is not None else result

    def first(self, predicate: Predicate) -> Optional[PluginRecord]:
        """Fetch the first record matching ``predicate``."""
        found = self.fetch(predicate, limit=1)
        return found[0] if found else None

    def count(self, predicate: Optional[Predicate] = None) -> int:
        return len(self.fetch(predicate))

    def insert(self, record: PluginRecord) -> None:
        with self._lock:
            self._records.append(record)
            self._dirty = True
        logger.debug(f"Inserted record: {record.identifier} ({record.partition.value})")

    def delete(self, record: PluginRecord) -> None:
        with self._lock:
            self._records = [r for r in self._records if r is not record]
            self._dirty = True
        logger.debug(f"Deleted record: {record.identifier} ({record.partition.value})")

    def delete_where(self, predicate: Predicate) -> int:
        """Delete every record matching ``predicate``.

        Returns:
            Number of deleted records
        """
        with self._lock:
            kept = [r for r in self._records if not predicate(r)]
            removed = len(self._records) - len(kept)
            self._records = kept
            if removed:
                self._dirty = True
        return removed

    def mark_changed(self) -> None:
        """Flag in-place record edits as unsaved."""
        with self._lock:
            self._dirty = True

    @property
    def has_changes(self) -> bool:
        with self._lock:
            return self._dirty

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the working set; hold it across read-modify-write sequences."""
        return self._lock
