"""Remote fetch, conditional update checks, atomic installs and update runs."""

__all__ = [
    "AtomicInstaller",
    "ScriptFetcher",
    "UpdateOrchestrator",
    "UpdateProgress",
    "UpdateStatus",
    "RunReport",
    "has_update",
]


def __getattr__(name):
    if name == "AtomicInstaller":
        from userscripts.sync.installer import AtomicInstaller
        return AtomicInstaller
    if name == "ScriptFetcher":
        from userscripts.sync.transport import ScriptFetcher
        return ScriptFetcher
    if name in ("UpdateOrchestrator", "UpdateProgress", "UpdateStatus", "RunReport"):
        from userscripts.sync import orchestrator
        return getattr(orchestrator, name)
    if name == "has_update":
        from userscripts.sync.update_check import has_update
        return has_update
    raise AttributeError(f"module 'userscripts.sync' has no attribute {name!r}")
