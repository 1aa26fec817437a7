"""Service container for the userscript stack."""

import logging

from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.constants import CATALOG_FILE, SETTINGS_FILE

logger = logging.getLogger(__name__)

# ============================================================================
# Global service instances (Singleton pattern, but exposed via functions for easier testing/mocking)
# ============================================================================

_settings_service_instance = None
_catalog_store_instance = None
_orchestrator_instance = None


def get_settings_service() -> SettingsService:
    """Get settings service (singleton)."""
    global _settings_service_instance
    if _settings_service_instance is None:
        _settings_service_instance = SettingsService(SETTINGS_FILE)
        logger.info("Created SettingsService instance")
    return _settings_service_instance


def get_catalog_store() -> CatalogStore:
    """Get catalog store (singleton)."""
    global _catalog_store_instance
    if _catalog_store_instance is None:
        _catalog_store_instance = CatalogStore(CATALOG_FILE)
        logger.info("Created CatalogStore instance")
    return _catalog_store_instance


def get_orchestrator():
    """Get update orchestrator (singleton)."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        from userscripts.sync.orchestrator import UpdateOrchestrator

        _orchestrator_instance = UpdateOrchestrator(
            store=get_catalog_store(),
            settings=get_settings_service(),
        )
        logger.info("Created UpdateOrchestrator instance")
    return _orchestrator_instance


# Test utility function (for unit testing - resets all singletons)
def reset_services():
    """Reset all service instances (only for testing)."""
    global _settings_service_instance, _catalog_store_instance, _orchestrator_instance

    _settings_service_instance = None
    _catalog_store_instance = None
    _orchestrator_instance = None
    logger.info("Reset all service instances")
