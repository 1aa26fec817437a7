"""Userscript catalog sync and update engine.

Imports are lazy so lightweight components (metadata decoding, the catalog
store) do not pull in aiohttp.
"""

__version__ = "0.1.0"

__all__ = [
    "MetadataDecoder",
    "CatalogStore",
    "CatalogReconciler",
    "SettingsService",
    "UpdateOrchestrator",
    "sync_external_scripts",
]


def __getattr__(name):
    if name == "MetadataDecoder":
        from userscripts.metadata.decoder import MetadataDecoder
        return MetadataDecoder
    if name in ("CatalogStore", "CatalogReconciler"):
        from userscripts import catalog
        return getattr(catalog, name)
    if name == "SettingsService":
        from userscripts.config import SettingsService
        return SettingsService
    if name == "UpdateOrchestrator":
        from userscripts.sync.orchestrator import UpdateOrchestrator
        return UpdateOrchestrator
    if name == "sync_external_scripts":
        from userscripts.external.sync import sync_external_scripts
        return sync_external_scripts
    raise AttributeError(f"module 'userscripts' has no attribute {name!r}")
