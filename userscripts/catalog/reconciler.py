"""Catalog reconciler - upserts and folder diffs over one catalog partition."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from userscripts.catalog.records import Partition, PluginRecord
from userscripts.catalog.store import CatalogStore, is_external
from userscripts.metadata.models import PluginMetadata

logger = logging.getLogger(__name__)

# identifier -> (filename without extension, metadata)
DiscoveredScripts = Dict[str, Tuple[str, PluginMetadata]]


@dataclass
class ReconcileResult:
    """Counts of the operations applied by a folder reconciliation."""

    inserted: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.updated or self.deleted)


class CatalogReconciler:
    """Applies discovered metadata to the catalog with per-partition identity rules.

    Internal records are keyed by filename, external records by identifier.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    def find(self, partition: Partition, key: str) -> Optional[PluginRecord]:
        """Find a record by its partition key."""
        if partition.is_internal:
            return self.store.first(lambda r: r.is_internal and r.filename == key)
        return self.store.first(lambda r: not r.is_internal and r.identifier == key)

    def upsert_one(
        self,
        partition: Partition,
        key: str,
        metadata: PluginMetadata,
        filename: Optional[str] = None,
    ) -> PluginRecord:
        """Update the record keyed by ``key`` or create it.

        Args:
            partition: INTERNAL (key is the filename) or EXTERNAL (key is the identifier)
            key: Partition key
            metadata: Freshly parsed metadata
            filename: Filename for a new external record; defaults to ``key``

        Returns:
            The updated or inserted record
        """
        with self.store.lock:
            record = self.find(partition, key)
            if record is not None:
                record.update_from(metadata, keep_identifier=not partition.is_internal)
                if filename is not None and not partition.is_internal:
                    record.filename = filename
                self.store.mark_changed()
                logger.debug(f"Updated {partition.value} plugin '{key}' to {metadata.version}")
                return record

            if partition.is_internal:
                record = PluginRecord.from_metadata(metadata, is_internal=True, filename=key)
            else:
                record = PluginRecord.from_metadata(
                    metadata, is_internal=False, filename=filename or key
                )
                record.identifier = key
            self.store.insert(record)
            logger.info(f"Added {partition.value} plugin '{key}' ({metadata.name})")
            return record

    def reconcile_folder(self, discovered: DiscoveredScripts) -> ReconcileResult:
        """Diff the external partition against a folder scan.

        Existing records found in ``discovered`` are updated and consumed,
        records missing from it are deleted, leftovers are inserted.

        Args:
            discovered: identifier -> (filename, metadata) from the scan

        Returns:
            ReconcileResult with operation counts
        """
        remaining = dict(discovered)
        result = ReconcileResult()

        with self.store.lock:
            for record in self.store.fetch(is_external):
                entry = remaining.pop(record.identifier, None)
                if entry is None:
                    self.store.delete(record)
                    result.deleted += 1
                    continue
                filename, metadata = entry
                record.filename = filename
                record.update_from(metadata, keep_identifier=True)
                result.updated += 1

            for identifier, (filename, metadata) in remaining.items():
                record = PluginRecord.from_metadata(metadata, is_internal=False, filename=filename)
                record.identifier = identifier
                self.store.insert(record)
                result.inserted += 1

            if result.updated:
                self.store.mark_changed()

        logger.info(
            f"Reconciled external plugins: "
            f"{result.inserted} added, {result.updated} updated, {result.deleted} removed"
        )
        return result
