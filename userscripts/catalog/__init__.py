"""Persistent plugin catalog and its reconciliation rules."""

from userscripts.catalog.reconciler import CatalogReconciler, DiscoveredScripts, ReconcileResult
from userscripts.catalog.records import Partition, PluginRecord
from userscripts.catalog.store import CatalogStore, is_external, is_internal

__all__ = [
    "CatalogReconciler",
    "CatalogStore",
    "DiscoveredScripts",
    "Partition",
    "PluginRecord",
    "ReconcileResult",
    "is_external",
    "is_internal",
]
