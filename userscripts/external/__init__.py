"""User-granted external folder: access, scanning, sync, monitoring, imports."""

__all__ = [
    "FolderAccess",
    "ExternalFolderScanner",
    "ExternalFolderMonitor",
    "PluginImporter",
    "sync_external_scripts",
]


def __getattr__(name):
    if name == "FolderAccess":
        from userscripts.external.access import FolderAccess
        return FolderAccess
    if name == "ExternalFolderScanner":
        from userscripts.external.scanner import ExternalFolderScanner
        return ExternalFolderScanner
    if name == "ExternalFolderMonitor":
        from userscripts.external.monitor import ExternalFolderMonitor
        return ExternalFolderMonitor
    if name == "PluginImporter":
        from userscripts.external.importer import PluginImporter
        return PluginImporter
    if name == "sync_external_scripts":
        from userscripts.external.sync import sync_external_scripts
        return sync_external_scripts
    raise AttributeError(f"module 'userscripts.external' has no attribute {name!r}")
