#!/usr/bin/env python3
"""Userscript management CLI tool."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import aiohttp
from dotenv import load_dotenv

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Load environment variables before the constants are read
load_dotenv()

from userscripts.catalog.store import CatalogStore
from userscripts.config import BuildChannel
from userscripts.constants import (
    CATALOG_FILE,
    INTERNAL_PLUGINS_DIR,
    INTERNAL_SCRIPTS_DIR,
    MAIN_SCRIPT_PATH,
)
from userscripts.dependencies import get_catalog_store, get_orchestrator, get_settings_service
from userscripts.errors import UserScriptsError
from userscripts.external.access import FolderAccess
from userscripts.external.sync import sync_external_scripts
from userscripts.injection import build_category_listing, set_plugin_enabled
from userscripts.metadata.decoder import MetadataDecoder
from userscripts.metadata.models import MainScriptMetadata


def find_record(store: CatalogStore, plugin_id: str):
    """Find a record by uuid, identifier or internal filename."""
    return store.first(
        lambda r: plugin_id in (r.uuid, r.identifier) or (r.is_internal and r.filename == plugin_id)
    )


def cmd_list(args):
    """List all cataloged plugins."""
    store = get_catalog_store()
    records = store.fetch()

    if not records:
        print("No plugins found. Run 'python manage_scripts.py update' first.")
        return

    print(f"{'ID':<28} {'Name':<36} {'Category':<14} {'Source':<10} {'Enabled':<8} {'Version'}")
    print("-" * 110)

    for r in sorted(records, key=lambda r: (r.category_value, r.display_name)):
        enabled = "Yes" if r.enabled else "No"
        source = "internal" if r.is_internal else "external"
        print(
            f"{r.identifier:<28} {r.display_name:<36} {r.category_value:<14} "
            f"{source:<10} {enabled:<8} {r.version or '-'}"
        )


def cmd_info(args):
    """Show detailed plugin information."""
    store = get_catalog_store()
    record = find_record(store, args.plugin_id)
    if not record:
        print(f"Plugin '{args.plugin_id}' not found.")
        sys.exit(1)

    print(f"Plugin: {record.identifier}")
    print(f"  Name:         {record.name}")
    print(f"  Category:     {record.category_value}{' (customized)' if record.category.is_customized else ''}")
    print(f"  Version:      {record.version}")
    print(f"  Author:       {record.author}")
    print(f"  Description:  {record.description}")
    print(f"  Source:       {record.partition.value}")
    print(f"  File:         {record.filename_with_extension}")
    print(f"  Enabled:      {record.enabled}")
    print(f"  UUID:         {record.uuid}")
    if record.download_url:
        print(f"  Download URL: {record.download_url}")
    if record.update_url:
        print(f"  Update URL:   {record.update_url}")


def cmd_update(args):
    """Sync the external folder, then run an update."""
    sync_external_scripts(get_settings_service(), get_catalog_store())

    def show_progress(progress):
        print(f"\r  Progress: {progress.completed}/{progress.total}", end="", flush=True)

    orchestrator = get_orchestrator()
    orchestrator.on_progress = show_progress
    try:
        report = asyncio.run(orchestrator.run_update())
    except (UserScriptsError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        print(f"\nUpdate failed: {e}")
        sys.exit(1)
    print()

    if report is None:
        print("An update is already running.")
        return
    print(
        f"Installed: {len(report.installed)}, up to date: {len(report.up_to_date)}, "
        f"skipped: {len(report.skipped)}"
    )
    for label in report.installed:
        print(f"  + {label}")


def cmd_sync_external(args):
    """Reconcile the catalog with the external folder."""
    folder = sync_external_scripts(get_settings_service(), get_catalog_store())
    if folder is None:
        print("No usable external folder; external plugins removed from the catalog.")
    else:
        print(f"Synced external plugins from {folder}")


def cmd_set_channel(args):
    """Select the build channel."""
    settings = get_settings_service()
    settings.build_channel = BuildChannel(args.channel)
    print(f"Build channel set to '{args.channel}'. Run 'python manage_scripts.py update' to switch builds.")


def cmd_set_folder(args):
    """Set or clear the external folder."""
    settings = get_settings_service()
    if args.clear:
        settings.external_folder = None
    else:
        if not args.path:
            print("Provide a folder path or --clear.")
            sys.exit(1)
        folder = Path(args.path).expanduser().resolve()
        if not folder.is_dir():
            print(f"Not a directory: {folder}")
            sys.exit(1)
        settings.external_folder = folder

    folder = sync_external_scripts(settings, get_catalog_store())
    print(f"External folder: {folder or 'none'}")


def _set_enabled(plugin_id: str, enabled: bool):
    store = get_catalog_store()
    record = find_record(store, plugin_id)
    if not record:
        print(f"Plugin '{plugin_id}' not found.")
        sys.exit(1)
    set_plugin_enabled(store, record.uuid, enabled)
    print(f"Plugin '{record.identifier}' {'enabled' if enabled else 'disabled'}.")


def cmd_enable(args):
    """Enable a plugin."""
    _set_enabled(args.plugin_id, True)


def cmd_disable(args):
    """Disable a plugin."""
    _set_enabled(args.plugin_id, False)


def cmd_scripts(args):
    """Turn injection of all scripts on or off, or show the category listing."""
    settings = get_settings_service()
    if args.state is not None:
        settings.scripts_enabled = args.state == "on"
    print(json.dumps(build_category_listing(settings, get_catalog_store()), indent=2, ensure_ascii=False))


def cmd_community(args):
    """Browse the community plugin index, optionally adding one plugin."""
    from userscripts.community.index import CommunityIndex, Sorting, filter_previews
    from userscripts.sync.transport import ScriptFetcher

    settings = get_settings_service()
    store = get_catalog_store()

    async def run():
        async with ScriptFetcher() as fetcher:
            index = CommunityIndex(store, settings, fetcher=fetcher)
            previews = await index.fetch_previews(Sorting(args.sort))
            previews = filter_previews(
                previews,
                search_text=args.search or "",
                author=args.author,
                category=args.category,
            )
            if args.add:
                preview = next((p for p in previews if p.id == args.add), None)
                if preview is None:
                    print(f"Community plugin '{args.add}' not found.")
                    sys.exit(1)
                record = await index.save(preview)
                print(f"Added '{record.identifier}' to {settings.external_folder}")
                return
            for p in previews:
                saved = "*" if p.is_saved else " "
                print(f"{saved} {p.id:<48} {p.metadata.name:<40} {p.metadata.category.raw_value}")

    try:
        asyncio.run(run())
    except (UserScriptsError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        print(f"Community index failed: {e}")
        sys.exit(1)


def cmd_add(args):
    """Add a plugin to the external folder from a URL or a local file."""
    from userscripts.external.importer import PluginImporter

    importer = PluginImporter(get_catalog_store(), get_settings_service())
    try:
        if args.file:
            source = Path(args.file)
            candidate = importer.from_code(
                source.read_text(encoding="utf-8"), args.filename or source.name
            )
        else:
            candidate = asyncio.run(importer.from_url(args.url))
        record = importer.save(candidate)
    except (UserScriptsError, ValueError, OSError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        print(f"Unable to add plugin: {e}")
        sys.exit(1)
    print(f"Plugin '{record.identifier}' added as {record.filename_with_extension}")


def cmd_doctor(args):
    """Run health checks on the userscript stack."""
    issues = []
    settings = get_settings_service()

    # Check directories
    if not INTERNAL_SCRIPTS_DIR.exists():
        issues.append(f"Scripts directory missing: {INTERNAL_SCRIPTS_DIR}")
    if not INTERNAL_PLUGINS_DIR.exists():
        issues.append(f"Plugins directory missing: {INTERNAL_PLUGINS_DIR}")

    # Check main script
    if not MAIN_SCRIPT_PATH.exists():
        issues.append(f"Main script not installed: {MAIN_SCRIPT_PATH}")
    else:
        try:
            MetadataDecoder().decode(MainScriptMetadata, MAIN_SCRIPT_PATH.read_text(encoding="utf-8"))
        except (UserScriptsError, UnicodeDecodeError) as e:
            issues.append(f"Main script has invalid metadata: {e}")

    # Check catalog file
    if CATALOG_FILE.exists():
        try:
            with open(CATALOG_FILE) as f:
                json.load(f)
        except json.JSONDecodeError as e:
            issues.append(f"Catalog file has invalid JSON: {e}")

    # Check external folder
    folder = settings.external_folder
    if folder is not None:
        try:
            with FolderAccess(folder).access():
                pass
        except UserScriptsError as e:
            issues.append(str(e))

    # Check enabled internal plugins have files
    store = get_catalog_store()
    for r in store.fetch(lambda r: r.enabled and r.is_internal):
        if not (INTERNAL_PLUGINS_DIR / r.filename_with_extension).exists():
            issues.append(f"Enabled plugin '{r.identifier}': file missing")

    if issues:
        print(f"Found {len(issues)} issue(s):")
        for i, issue in enumerate(issues, 1):
            print(f"  {i}. {issue}")
        sys.exit(1)
    else:
        enabled = store.count(lambda r: r.enabled)
        print(f"All checks passed. {store.count()} plugin(s) cataloged, {enabled} enabled.")


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    parser = argparse.ArgumentParser(description="Userscript Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # list
    subparsers.add_parser("list", help="List all plugins")

    # info
    info_parser = subparsers.add_parser("info", help="Show plugin details")
    info_parser.add_argument("plugin_id", help="Plugin ID, filename or UUID")

    # update
    subparsers.add_parser("update", help="Update the main script and plugins")

    # sync-external
    subparsers.add_parser("sync-external", help="Reconcile the catalog with the external folder")

    # set-channel
    channel_parser = subparsers.add_parser("set-channel", help="Select the build channel")
    channel_parser.add_argument("channel", choices=[c.value for c in BuildChannel])

    # set-folder
    folder_parser = subparsers.add_parser("set-folder", help="Set the external folder")
    folder_parser.add_argument("path", nargs="?", help="Folder holding external plugins")
    folder_parser.add_argument("--clear", action="store_true", help="Forget the external folder")

    # enable
    enable_parser = subparsers.add_parser("enable", help="Enable a plugin")
    enable_parser.add_argument("plugin_id", help="Plugin ID, filename or UUID")

    # disable
    disable_parser = subparsers.add_parser("disable", help="Disable a plugin")
    disable_parser.add_argument("plugin_id", help="Plugin ID, filename or UUID")

    # scripts
    scripts_parser = subparsers.add_parser("scripts", help="Show or toggle script injection")
    scripts_parser.add_argument("state", nargs="?", choices=["on", "off"])

    # community
    community_parser = subparsers.add_parser("community", help="Browse community plugins")
    community_parser.add_argument("--search", help="Search name and description")
    community_parser.add_argument("--author", help="Only plugins by this author")
    community_parser.add_argument("--category", help="Only plugins in this category")
    community_parser.add_argument("--sort", default="name", choices=["name", "author", "category"])
    community_parser.add_argument("--add", metavar="AUTHOR/FILENAME", help="Add this plugin")

    # add
    add_parser = subparsers.add_parser("add", help="Add a plugin to the external folder")
    source = add_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="URL of a .user.js plugin")
    source.add_argument("--file", help="Local .user.js file to import")
    add_parser.add_argument("--filename", help="Filename to save a local file as")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "list": cmd_list,
        "info": cmd_info,
        "update": cmd_update,
        "sync-external": cmd_sync_external,
        "set-channel": cmd_set_channel,
        "set-folder": cmd_set_folder,
        "enable": cmd_enable,
        "disable": cmd_disable,
        "scripts": cmd_scripts,
        "community": cmd_community,
        "add": cmd_add,
        "doctor": cmd_doctor,
    }

    commands[args.command](args)


if __name__ == "__main__":
    main()
