"""Injection payload and catalog listing consumed by the injection host."""

import json
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from userscripts.catalog.records import PluginRecord
from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.constants import INTERNAL_PLUGINS_DIR, MAIN_SCRIPT_PATH
from userscripts.errors import ResourceAccessError, UserScriptsError
from userscripts.external.access import FolderAccess
from userscripts.metadata.decoder import MetadataDecoder
from userscripts.metadata.models import Category, MainScriptMetadata

logger = logging.getLogger(__name__)


def wrap_code(code: str, name: Optional[str] = None, description: Optional[str] = None,
              version: Optional[str] = None) -> str:
    """Wrap script code in a closure, exposing ``GM_info`` when a name is known."""
    if name is None:
        return "(function() { \n" + code + "\n })();"
    info = {"script": {"name": name, "description": description, "version": version}}
    return (
        "(function() { const GM_info = " + json.dumps(info, ensure_ascii=False)
        + "; (function() { \n" + code + "\n })(); })();"
    )


def _read_plugin(record: PluginRecord, directory: Path) -> Optional[str]:
    path = directory / record.filename_with_extension
    try:
        code = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning(f"Plugin file missing for '{record.identifier}': {path}")
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Unable to read plugin '{record.identifier}': {e}")
        return None
    return wrap_code(code, record.name, record.description, record.version)


def build_injection_payload(
    settings: SettingsService,
    store: CatalogStore,
    main_script_path: Path = MAIN_SCRIPT_PATH,
    plugins_dir: Path = INTERNAL_PLUGINS_DIR,
    access_factory: Callable[[Path], FolderAccess] = FolderAccess,
) -> Dict[str, List[str]]:
    """Assemble the scripts to inject, main script first.

    Returns:
        {"scripts": [...]}; empty when scripts are disabled or the main
        script is missing or invalid
    """
    payload: Dict[str, List[str]] = {"scripts": []}
    if not settings.scripts_enabled:
        return payload

    try:
        main_code = main_script_path.read_text(encoding="utf-8")
        main = MetadataDecoder().decode(MainScriptMetadata, main_code)
    except (OSError, UnicodeDecodeError, UserScriptsError) as e:
        logger.error(f"Main script unavailable, nothing to inject: {e}")
        return payload
    payload["scripts"].append(wrap_code(main_code, main.name, main.description, main.version))

    enabled = store.fetch(lambda r: r.enabled)
    for record in enabled:
        if record.is_internal:
            code = _read_plugin(record, plugins_dir)
            if code is not None:
                payload["scripts"].append(code)

    external = [r for r in enabled if not r.is_internal]
    folder = settings.external_folder
    if external and folder is not None:
        with ExitStack() as stack:
            try:
                granted = stack.enter_context(access_factory(folder).access())
            except ResourceAccessError as e:
                logger.error(f"External plugins not injected: {e}")
                return payload
            for record in external:
                code = _read_plugin(record, granted)
                if code is not None:
                    payload["scripts"].append(code)

    logger.debug(f"Injection payload holds {len(payload['scripts'])} script(s)")
    return payload


def build_category_listing(settings: SettingsService, store: CatalogStore) -> Dict[str, Any]:
    """List plugins grouped by category, default categories in their fixed order.

    Customized categories follow, sorted by name. Plugins are sorted by
    display name within a category.
    """
    grouped: Dict[str, List[PluginRecord]] = {}
    for record in store.fetch():
        grouped.setdefault(record.category_value, []).append(record)

    names = [c.raw_value for c in Category.all_defaults()]
    names += sorted(n for n in grouped if Category.from_raw(n).is_customized)

    categories = []
    for name in names:
        records = grouped.get(name)
        if not records:
            continue
        categories.append({
            "name": name,
            "plugins": [
                {"uuid": r.uuid, "display_name": r.display_name, "enabled": r.enabled}
                for r in sorted(records, key=lambda r: r.display_name.casefold())
            ],
        })

    return {"scripts_enabled": settings.scripts_enabled, "categories": categories}


def set_plugin_enabled(store: CatalogStore, uuid: str, enabled: bool) -> bool:
    """Enable or disable a plugin by uuid and save the catalog.

    Returns:
        True if the plugin was found
    """
    with store.lock:
        record = store.first(lambda r: r.uuid == uuid)
        if record is None:
            logger.warning(f"Plugin not found: {uuid}")
            return False
        record.enabled = enabled
        store.mark_changed()
    store.save()
    logger.info(f"{'Enabled' if enabled else 'Disabled'} plugin: {record.display_name}")
    return True
