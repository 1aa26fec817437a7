"""External folder sync - reconciles the external partition with the folder."""

import logging
from pathlib import Path
from typing import Callable, Optional

from userscripts.catalog.reconciler import CatalogReconciler
from userscripts.catalog.store import CatalogStore, is_external
from userscripts.config import SettingsService
from userscripts.errors import ResourceAccessError
from userscripts.external.access import FolderAccess
from userscripts.external.scanner import ExternalFolderScanner

logger = logging.getLogger(__name__)


def sync_external_scripts(
    settings: SettingsService,
    store: CatalogStore,
    access_factory: Callable[[Path], FolderAccess] = FolderAccess,
    scanner: Optional[ExternalFolderScanner] = None,
    save: bool = True,
) -> Optional[Path]:
    """Reconcile external catalog records with the configured folder.

    Without a usable folder every external record is removed. A folder that
    no longer exists is also forgotten from the settings.

    Args:
        settings: Settings holding the external folder location
        store: Catalog store
        access_factory: Builds the access guard for the folder
        scanner: Folder scanner (default ExternalFolderScanner)
        save: Persist the catalog afterwards

    Returns:
        The synced folder, or None if there is none
    """
    folder = settings.external_folder
    result_folder: Optional[Path] = None

    if folder is None:
        removed = store.delete_where(is_external)
        logger.info(f"No external folder configured, removed {removed} external record(s)")
    elif not folder.exists():
        logger.warning(f"External folder {folder} no longer exists, forgetting it")
        settings.external_folder = None
        store.delete_where(is_external)
    else:
        try:
            with access_factory(folder).access() as granted:
                discovered = (scanner or ExternalFolderScanner()).scan(granted)
                CatalogReconciler(store).reconcile_folder(discovered)
            result_folder = folder
        except ResourceAccessError as e:
            logger.error(f"Unable to access external folder: {e}")
            store.delete_where(is_external)

    if save and store.has_changes:
        store.save()
    return result_folder
