"""Update orchestrator - top-level coordinator of an update run."""

import asyncio
import json
import logging
import time
from contextlib import ExitStack, asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Set

from userscripts.catalog.reconciler import CatalogReconciler
from userscripts.catalog.records import Partition, PluginRecord
from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.constants import (
    INTERNAL_PLUGINS_DIR,
    INTERNAL_PLUGINS_MANIFEST,
    INTERNAL_SCRIPTS_DIR,
    MAIN_SCRIPT_FILENAME,
    USER_SCRIPT_SUFFIX,
    WEBSITE_BUILD_URL,
)
from userscripts.errors import ResourceAccessError, UserScriptsError
from userscripts.external.access import FolderAccess
from userscripts.metadata.decoder import MetadataDecoder, parse_header
from userscripts.metadata.models import MainScriptMetadata, PluginMetadata
from userscripts.sync.installer import AtomicInstaller
from userscripts.sync.targets import (
    BuildLayout,
    ExternalPluginTarget,
    InternalPluginTarget,
    MainScriptTarget,
    UpdateTarget,
    content_url_for,
)
from userscripts.sync.transport import ScriptFetcher
from userscripts.sync.update_check import has_update
from userscripts.utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


def load_internal_plugins(manifest_file: Path = INTERNAL_PLUGINS_MANIFEST) -> List[str]:
    """Load the bundled list of internal plugin filenames."""
    with open(manifest_file, "r", encoding="utf-8") as f:
        names = json.load(f)
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise ValueError(f"Internal plugin manifest must be a list of filenames: {manifest_file}")
    return names


def is_external_update_candidate(record: PluginRecord) -> bool:
    """External, synced at least once, and with somewhere to update from."""
    return (
        not record.is_internal
        and record.version is not None
        and (record.download_url is not None or record.update_url is not None)
    )


class UpdateStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class UpdateProgress:
    total: int = 0
    completed: int = 0

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 0.0


@dataclass
class RunReport:
    """Outcome of one update run, by target label."""

    installed: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class UpdateOrchestrator:
    """Coordinates an update run: build targets, fan out, join, commit.

    At most one run executes at a time. External plugins being updated are
    tracked in an in-flight set so they are never targeted twice.
    """

    def __init__(
        self,
        store: CatalogStore,
        settings: SettingsService,
        fetcher: Optional[ScriptFetcher] = None,
        internal_plugins: Optional[List[str]] = None,
        base_url: str = WEBSITE_BUILD_URL,
        scripts_dir: Path = INTERNAL_SCRIPTS_DIR,
        plugins_dir: Path = INTERNAL_PLUGINS_DIR,
        access_factory: Callable[[Path], FolderAccess] = FolderAccess,
        on_progress: Optional[Callable[[UpdateProgress], None]] = None,
    ):
        self.store = store
        self.settings = settings
        self.reconciler = CatalogReconciler(store)
        self.fetcher = fetcher
        self.internal_plugins = (
            internal_plugins if internal_plugins is not None else load_internal_plugins()
        )
        self.base_url = base_url
        self.scripts_dir = scripts_dir
        self.plugins_dir = plugins_dir
        self.access_factory = access_factory
        self.on_progress = on_progress

        self.status = UpdateStatus.IDLE
        self.progress = UpdateProgress()
        self._in_flight: Set[str] = set()
        self._catalog_lock = asyncio.Lock()
        self._run_logger = RunLogger(logger)
        self._report = RunReport()

    @property
    def main_script_path(self) -> Path:
        return self.scripts_dir / (MAIN_SCRIPT_FILENAME + USER_SCRIPT_SUFFIX)

    @property
    def in_flight(self) -> Set[str]:
        """Identifiers of external plugins currently being updated."""
        return set(self._in_flight)

    def ensure_directories(self) -> None:
        self.scripts_dir.mkdir(parents=True, exist_ok=True)
        self.plugins_dir.mkdir(parents=True, exist_ok=True)

    def fetch_main_script_version(self) -> Optional[str]:
        """Version of the installed main script, None if missing or unreadable."""
        if not self.scripts_dir.exists():
            self.ensure_directories()
            return None
        if not self.main_script_path.exists():
            return None
        try:
            items = parse_header(self.main_script_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, UserScriptsError) as e:
            logger.warning(f"Unable to read main script version: {e}")
            return None
        return items.get("version")

    def build_targets(self) -> List[UpdateTarget]:
        """Build the work list for a run."""
        targets: List[UpdateTarget] = [
            MainScriptTarget(current_version=self.fetch_main_script_version())
        ]

        for filename in self.internal_plugins:
            record = self.reconciler.find(Partition.INTERNAL, filename)
            targets.append(
                InternalPluginTarget(
                    filename=filename,
                    current_version=record.version if record else None,
                )
            )

        folder = self.settings.external_folder
        candidates = self.store.fetch(is_external_update_candidate)
        if candidates and folder is None:
            logger.warning(f"{len(candidates)} external plugin(s) skipped: no external folder")
            return targets

        for record in candidates:
            if record.identifier in self._in_flight:
                logger.debug(f"External plugin '{record.identifier}' already in flight, skipping")
                continue
            download_url = content_url_for(record.download_url, record.update_url)
            if download_url is None:
                logger.warning(
                    f"External plugin '{record.identifier}' skipped: no script URL "
                    f"derivable from updateURL {record.update_url}"
                )
                continue
            targets.append(
                ExternalPluginTarget(
                    identifier=record.identifier,
                    download_url=download_url,
                    destination_path=folder / record.filename_with_extension,
                    current_version=record.version,
                    update_url=record.update_url,
                )
            )

        return targets

    async def run_update(self) -> Optional[RunReport]:
        """Run one update; returns immediately (None) if a run is in progress.

        Returns:
            RunReport of the run

        Raises:
            The first unrecovered error of any target, after the remaining
            targets were cancelled and the catalog was saved.
        """
        if self.status == UpdateStatus.RUNNING:
            logger.info("Update already running, ignoring request")
            return None

        self.status = UpdateStatus.RUNNING
        started = time.monotonic()
        self._report = RunReport()
        claimed: List[str] = []
        try:
            self.ensure_directories()
            with ExitStack() as folder_scope:
                targets = self._enter_external_scope(self.build_targets(), folder_scope)

                claimed = [t.identifier for t in targets if isinstance(t, ExternalPluginTarget)]
                self._in_flight.update(claimed)

                self.progress = UpdateProgress(total=len(targets))
                self._notify_progress()

                try:
                    async with self._fetcher_scope() as fetcher:
                        await self._run_targets(targets, fetcher)
                finally:
                    self._commit()
            return self._report
        finally:
            self._in_flight.difference_update(claimed)
            self.status = UpdateStatus.IDLE
            self.progress = UpdateProgress()
            duration_ms = int((time.monotonic() - started) * 1000)
            self._run_logger.log_summary(self._report, duration_ms)

    def _enter_external_scope(self, targets: List[UpdateTarget], stack: ExitStack) -> List[UpdateTarget]:
        """Acquire external folder access for the run, or drop external targets."""
        if not any(isinstance(t, ExternalPluginTarget) for t in targets):
            return targets
        folder = self.settings.external_folder
        try:
            stack.enter_context(self.access_factory(folder).access())
        except ResourceAccessError as e:
            logger.error(f"External plugins skipped: {e}")
            return [t for t in targets if not isinstance(t, ExternalPluginTarget)]
        return targets

    @asynccontextmanager
    async def _fetcher_scope(self) -> AsyncIterator[ScriptFetcher]:
        if self.fetcher is not None:
            yield self.fetcher
            return
        async with ScriptFetcher() as fetcher:
            yield fetcher

    async def _run_targets(self, targets: List[UpdateTarget], fetcher: ScriptFetcher) -> None:
        """Fan out one task per target and join; cancel the rest on first error."""
        if not targets:
            return

        tasks = [
            asyncio.create_task(self._run_target(target, fetcher), name=target.label)
            for target in targets
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        first_error: Optional[BaseException] = None
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                first_error = task.exception()
                break

        for task in pending:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for target, result in zip(targets, results):
            if isinstance(result, asyncio.CancelledError):
                self._run_logger.log_outcome(target.label, "cancelled")

        if first_error is not None:
            raise first_error

    async def _run_target(self, target: UpdateTarget, fetcher: ScriptFetcher) -> None:
        try:
            if isinstance(target, MainScriptTarget):
                outcome = await self._update_main_script(target, fetcher)
            elif isinstance(target, InternalPluginTarget):
                outcome = await self._update_internal_plugin(target, fetcher)
            else:
                outcome = await self._update_external_plugin(target, fetcher)
        except Exception as e:
            self._report.failed.append(target.label)
            self._run_logger.log_outcome(target.label, "failed", str(e))
            raise

        getattr(self._report, outcome.replace("-", "_")).append(target.label)
        self._run_logger.log_outcome(target.label, outcome)
        self._advance()

    async def _update_main_script(self, target: MainScriptTarget, fetcher: ScriptFetcher) -> str:
        layout = BuildLayout(self.base_url, self.settings.build_channel)
        if not await has_update(fetcher, layout.main_script_probe_url, target.current_version):
            return "up-to-date"

        await AtomicInstaller(fetcher).install(
            layout.main_script_url,
            self.main_script_path,
            lambda content: MetadataDecoder().decode_script(MainScriptMetadata, content),
        )
        return "installed"

    async def _update_internal_plugin(self, target: InternalPluginTarget, fetcher: ScriptFetcher) -> str:
        layout = BuildLayout(self.base_url, self.settings.build_channel)
        if not await has_update(fetcher, layout.plugin_probe_url(target.filename), target.current_version):
            return "up-to-date"

        metadata = await AtomicInstaller(fetcher).install(
            layout.plugin_url(target.filename),
            self.plugins_dir / (target.filename + USER_SCRIPT_SUFFIX),
            _decode_plugin,
        )
        async with self._catalog_lock:
            self.reconciler.upsert_one(Partition.INTERNAL, target.filename, metadata)
        return "installed"

    async def _update_external_plugin(self, target: ExternalPluginTarget, fetcher: ScriptFetcher) -> str:
        if target.update_url is not None and not await has_update(
            fetcher, target.update_url, target.current_version
        ):
            return "up-to-date"

        metadata = await AtomicInstaller(fetcher).install(
            target.download_url,
            target.destination_path,
            _decode_plugin,
            require_existing=True,
        )
        if metadata is None:
            return "skipped"
        async with self._catalog_lock:
            self.reconciler.upsert_one(Partition.EXTERNAL, target.identifier, metadata)
        return "installed"

    def _advance(self) -> None:
        self.progress.completed += 1
        self._notify_progress()

    def _notify_progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(UpdateProgress(self.progress.total, self.progress.completed))

    def _commit(self) -> None:
        if not self.store.has_changes:
            return
        try:
            self.store.save()
        except UserScriptsError as e:
            logger.error(f"Failed to save catalog: {e}")
            raise


def _decode_plugin(content: str) -> PluginMetadata:
    return MetadataDecoder().decode_script(PluginMetadata, content)
