"""External folder scanner - finds plugin-eligible userscripts in a folder."""

import logging
from pathlib import Path

from userscripts.catalog.reconciler import DiscoveredScripts
from userscripts.constants import USER_SCRIPT_SUFFIX
from userscripts.errors import UserScriptsError
from userscripts.metadata.decoder import is_plugin_eligible, parse_header
from userscripts.metadata.models import PluginMetadata

logger = logging.getLogger(__name__)


class ExternalFolderScanner:
    """Scans a folder for `*.user.js` files carrying plugin metadata.

    Files are visited in lexical filename order. When two files declare the
    same id, the first one wins and the other is skipped with a warning.
    """

    def scan(self, folder: Path) -> DiscoveredScripts:
        """Scan ``folder`` (the caller holds access to it).

        Args:
            folder: External folder

        Returns:
            identifier -> (filename without extension, metadata)
        """
        discovered: DiscoveredScripts = {}

        for item in sorted(folder.iterdir(), key=lambda p: p.name):
            if not item.is_file() or not item.name.endswith(USER_SCRIPT_SUFFIX):
                continue

            metadata = self._load_metadata(item)
            if metadata is None:
                continue

            if metadata.id in discovered:
                logger.warning(
                    f"Duplicate plugin ID '{metadata.id}' found at {item}, "
                    f"skipping (first-found wins)"
                )
                continue

            filename = item.name[: -len(USER_SCRIPT_SUFFIX)]
            discovered[metadata.id] = (filename, metadata)

        logger.info(f"Discovered {len(discovered)} external plugin(s) in {folder}")
        return discovered

    def _load_metadata(self, script_file: Path):
        """Load and project the header of one script, None if not a plugin."""
        try:
            content = script_file.read_text(encoding="utf-8")
            items = parse_header(content)
            if not is_plugin_eligible(items):
                logger.debug(f"Not a plugin (missing id or category): {script_file}")
                return None
            return PluginMetadata.from_items(items)

        except UnicodeDecodeError as e:
            logger.error(f"Unreadable script {script_file}: {e}")
        except UserScriptsError as e:
            logger.error(f"Invalid metadata in {script_file}: {e}")
        except OSError as e:
            logger.error(f"Error reading {script_file}: {e}")

        return None
