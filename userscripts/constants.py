"""Global constants for the userscript stack."""

import os
from pathlib import Path

# Directory paths
PACKAGE_ROOT = Path(__file__).resolve().parent                # /userscripts
PROJECT_ROOT = PACKAGE_ROOT.parent

# Data directory (supports USERSCRIPTS_DATA_DIR env var, relative paths resolve against PROJECT_ROOT)
_data_dir_env = os.getenv("USERSCRIPTS_DATA_DIR", "")
if _data_dir_env:
    _data_dir_path = Path(_data_dir_env)
    DATA_DIR = _data_dir_path if _data_dir_path.is_absolute() else (PROJECT_ROOT / _data_dir_path).resolve()
else:
    DATA_DIR = PROJECT_ROOT / "data"

INTERNAL_SCRIPTS_DIR = DATA_DIR / "scripts"                   # main script lives here
INTERNAL_PLUGINS_DIR = INTERNAL_SCRIPTS_DIR / "plugins"       # internal plugins live here
CATALOG_FILE = DATA_DIR / "catalog.json"
SETTINGS_FILE = DATA_DIR / "settings.json"

# Bundled list of internal plugin filenames
INTERNAL_PLUGINS_MANIFEST = PACKAGE_ROOT / "resources" / "internal_plugins.json"

# File naming
MAIN_SCRIPT_FILENAME = "total-conversion-build"
USER_SCRIPT_EXTENSION = "user.js"
USER_SCRIPT_SUFFIX = "." + USER_SCRIPT_EXTENSION
SCRIPT_METADATA_EXTENSION = "meta.js"
SCRIPT_METADATA_SUFFIX = "." + SCRIPT_METADATA_EXTENSION

MAIN_SCRIPT_PATH = INTERNAL_SCRIPTS_DIR / (MAIN_SCRIPT_FILENAME + USER_SCRIPT_SUFFIX)

# Remote locations
WEBSITE_BUILD_URL = os.getenv("USERSCRIPTS_BUILD_URL", "https://iitc.app/build/")
COMMUNITY_INDEX_URL = os.getenv(
    "USERSCRIPTS_COMMUNITY_INDEX_URL",
    "https://lucka-me.github.io/iitc-community-plugins-index/",
)
COMMUNITY_REPOSITORY = "IITC-CE/Community-plugins"
COMMUNITY_BRANCH = "master"
RAW_CONTENT_URL = "https://raw.githubusercontent.com/"
