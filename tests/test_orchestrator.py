"""Tests for the update orchestrator."""

import asyncio

import pytest

from conftest import FakeFetcher, make_main_script, make_plugin, make_script
from userscripts.catalog.reconciler import CatalogReconciler
from userscripts.catalog.records import Partition
from userscripts.catalog.store import CatalogStore, is_external, is_internal
from userscripts.config import BuildChannel
from userscripts.errors import MetadataSyntaxError, SyntaxPart, TransportError
from userscripts.metadata.models import PluginMetadata
from userscripts.sync.orchestrator import (
    UpdateOrchestrator,
    UpdateStatus,
    is_external_update_candidate,
    load_internal_plugins,
)
from userscripts.sync.targets import (
    BuildLayout,
    ExternalPluginTarget,
    InternalPluginTarget,
    MainScriptTarget,
    content_url_for,
)

BASE = "https://build.example"
MAIN_URL = f"{BASE}/release/total-conversion-build.user.js"
MAIN_PROBE = f"{BASE}/release/total-conversion-build.meta.js"
BOOKMARKS_URL = f"{BASE}/release/plugins/bookmarks.user.js"


def make_orchestrator(tmp_path, store, settings, fetcher, internal_plugins=("bookmarks",), **kwargs):
    return UpdateOrchestrator(
        store=store,
        settings=settings,
        fetcher=fetcher,
        internal_plugins=list(internal_plugins),
        base_url=BASE + "/",
        scripts_dir=tmp_path / "scripts",
        plugins_dir=tmp_path / "scripts" / "plugins",
        **kwargs,
    )


def add_external(store, identifier, version="1.0", filename=None, **urls):
    items = {"id": identifier, "name": identifier, "category": "Misc", "version": version}
    items.update(urls)
    items = {key: value for key, value in items.items() if value is not None}
    return CatalogReconciler(store).upsert_one(
        Partition.EXTERNAL, identifier, PluginMetadata.from_items(items), filename=filename
    )


class TestBuildLayout:
    """Tests for BuildLayout URLs."""

    def test_urls(self):
        layout = BuildLayout("https://iitc.app/build/", BuildChannel.BETA)
        assert layout.main_script_url == "https://iitc.app/build/beta/total-conversion-build.user.js"
        assert layout.main_script_probe_url == "https://iitc.app/build/beta/total-conversion-build.meta.js"
        assert layout.plugin_url("bookmarks") == "https://iitc.app/build/beta/plugins/bookmarks.user.js"
        assert layout.plugin_probe_url("bookmarks") == "https://iitc.app/build/beta/plugins/bookmarks.meta.js"


class TestBuildTargets:
    """Tests for target construction."""

    def test_bundled_manifest_loads(self):
        names = load_internal_plugins()
        assert "bookmarks" in names
        assert all(isinstance(n, str) for n in names)

    def test_main_and_internal_targets(self, tmp_path, store, settings):
        CatalogReconciler(store).upsert_one(
            Partition.INTERNAL, "bookmarks", PluginMetadata.from_items(
                {"id": "bookmarks", "name": "Bookmarks", "category": "Controls", "version": "0.4"}
            )
        )
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher(), ("bookmarks", "draw-tools"))

        targets = orchestrator.build_targets()

        assert targets[0] == MainScriptTarget(current_version=None)
        assert targets[1] == InternalPluginTarget("bookmarks", "0.4")
        assert targets[2] == InternalPluginTarget("draw-tools", None)

    def test_external_candidates(self, tmp_path, store, settings, external_dir):
        settings.external_folder = external_dir
        add_external(store, "a", downloadURL="https://x.example/a.user.js")
        add_external(store, "b", updateURL="https://x.example/b.meta.js")
        add_external(store, "c")
        add_external(store, "d", version=None, downloadURL="https://x.example/d.user.js")
        add_external(store, "e", updateURL="https://x.example/e.txt")
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher(), ())

        external = [t for t in orchestrator.build_targets() if isinstance(t, ExternalPluginTarget)]

        assert [t.identifier for t in external] == ["a", "b"]
        assert external[0].download_url == "https://x.example/a.user.js"
        assert external[0].destination_path == external_dir / "a.user.js"
        assert external[1].download_url == "https://x.example/b.user.js"
        assert external[1].update_url == "https://x.example/b.meta.js"

    def test_content_url_for(self):
        assert content_url_for("https://x.example/a.user.js", "https://x.example/b.meta.js") == (
            "https://x.example/a.user.js"
        )
        assert content_url_for(None, "https://x.example/b.meta.js?v=2") == "https://x.example/b.user.js?v=2"
        assert content_url_for(None, "https://x.example/b.js") is None
        assert content_url_for(None, None) is None

    def test_no_external_targets_without_folder(self, tmp_path, store, settings):
        add_external(store, "a", downloadURL="https://x.example/a.user.js")
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher(), ())
        assert not any(isinstance(t, ExternalPluginTarget) for t in orchestrator.build_targets())

    def test_in_flight_plugins_are_not_targeted(self, tmp_path, store, settings, external_dir):
        settings.external_folder = external_dir
        add_external(store, "a", downloadURL="https://x.example/a.user.js")
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher(), ())
        orchestrator._in_flight.add("a")
        assert not any(isinstance(t, ExternalPluginTarget) for t in orchestrator.build_targets())

    def test_update_candidate_predicate(self, store):
        record = add_external(store, "a", downloadURL="https://x.example/a.user.js")
        assert is_external_update_candidate(record)
        record.version = None
        assert not is_external_update_candidate(record)


class TestFetchMainScriptVersion:
    """Tests for fetch_main_script_version."""

    def test_creates_directories_when_missing(self, tmp_path, store, settings):
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher())
        assert orchestrator.fetch_main_script_version() is None
        assert (tmp_path / "scripts" / "plugins").is_dir()

    def test_reads_installed_version(self, tmp_path, store, settings):
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher())
        orchestrator.ensure_directories()
        orchestrator.main_script_path.write_text(make_main_script("0.38.1"))
        assert orchestrator.fetch_main_script_version() == "0.38.1"

    def test_invalid_main_script(self, tmp_path, store, settings):
        orchestrator = make_orchestrator(tmp_path, store, settings, FakeFetcher())
        orchestrator.ensure_directories()
        orchestrator.main_script_path.write_text("garbage")
        assert orchestrator.fetch_main_script_version() is None


class TestRunUpdate:
    """Tests for run_update."""

    def test_fresh_install(self, tmp_path, store, settings):
        fetcher = FakeFetcher({
            MAIN_URL: make_main_script("0.38.0"),
            BOOKMARKS_URL: make_plugin("bookmarks@ZasoGD", "0.4.2", category="Controls"),
        })
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher)

        report = asyncio.run(orchestrator.run_update())

        assert sorted(report.installed) == ["internal:bookmarks", "main script"]
        assert report.failed == []
        assert MAIN_PROBE not in fetcher.requests
        assert orchestrator.fetch_main_script_version() == "0.38.0"
        assert (tmp_path / "scripts" / "plugins" / "bookmarks.user.js").exists()

        saved = CatalogStore(tmp_path / "catalog.json").fetch(is_internal)
        assert len(saved) == 1
        assert saved[0].filename == "bookmarks"
        assert saved[0].identifier == "bookmarks@ZasoGD"
        assert saved[0].version == "0.4.2"
        assert orchestrator.status == UpdateStatus.IDLE

    def test_up_to_date_skips_download(self, tmp_path, store, settings):
        fetcher = FakeFetcher({MAIN_PROBE: make_script({"version": "0.38.0"})})
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())
        orchestrator.ensure_directories()
        orchestrator.main_script_path.write_text(make_main_script("0.38.0"))

        report = asyncio.run(orchestrator.run_update())

        assert report.up_to_date == ["main script"]
        assert MAIN_URL not in fetcher.requests

    def test_uses_selected_channel(self, tmp_path, store, settings):
        settings.build_channel = BuildChannel.BETA
        beta_url = f"{BASE}/beta/total-conversion-build.user.js"
        fetcher = FakeFetcher({beta_url: make_main_script("0.39.0-beta")})
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())

        asyncio.run(orchestrator.run_update())

        assert fetcher.requests == [beta_url]

    def test_second_run_while_running_is_ignored(self, tmp_path, store, settings):
        """A concurrent request returns None and adds no progress."""
        fetcher = FakeFetcher(
            {MAIN_URL: make_main_script(), BOOKMARKS_URL: make_plugin("bookmarks")},
            delays={MAIN_URL: 0.05},
        )
        updates = []
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, on_progress=updates.append)

        async def scenario():
            first = asyncio.create_task(orchestrator.run_update())
            await asyncio.sleep(0)
            assert orchestrator.status == UpdateStatus.RUNNING
            second = await orchestrator.run_update()
            return await first, second

        first, second = asyncio.run(scenario())

        assert second is None
        assert len(first.installed) == 2
        assert [u.completed for u in updates] == [0, 1, 2]
        assert all(u.total == 2 for u in updates)
        assert fetcher.requests.count(MAIN_URL) == 1

    def test_first_error_cancels_siblings(self, tmp_path, store, settings):
        """The failing target aborts the run; slower siblings are cancelled."""
        fetcher = FakeFetcher(
            {MAIN_URL: 503, BOOKMARKS_URL: make_plugin("bookmarks")},
            delays={BOOKMARKS_URL: 1.0},
        )
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher)

        with pytest.raises(TransportError):
            asyncio.run(orchestrator.run_update())

        plugins_dir = tmp_path / "scripts" / "plugins"
        assert list(plugins_dir.iterdir()) == []
        assert store.count() == 0
        assert orchestrator.status == UpdateStatus.IDLE
        assert orchestrator.progress.total == 0

    def test_completed_work_is_committed_on_error(self, tmp_path, store, settings):
        fetcher = FakeFetcher(
            {MAIN_URL: 503, BOOKMARKS_URL: make_plugin("bookmarks")},
            delays={MAIN_URL: 0.05},
        )
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher)

        with pytest.raises(TransportError):
            asyncio.run(orchestrator.run_update())

        saved = CatalogStore(tmp_path / "catalog.json").fetch()
        assert [r.filename for r in saved] == ["bookmarks"]

    def test_external_plugin_updated(self, tmp_path, store, settings, external_dir):
        settings.external_folder = external_dir
        (external_dir / "my-foo.user.js").write_text(make_plugin("foo", "1.0"))
        add_external(
            store, "foo", "1.0", filename="my-foo",
            downloadURL="https://x.example/foo.user.js",
            updateURL="https://x.example/foo.meta.js",
        )
        fetcher = FakeFetcher({
            "https://x.example/foo.meta.js": make_script({"version": "1.1"}),
            "https://x.example/foo.user.js": make_plugin(
                "foo-new-id", "1.1",
                downloadURL="https://x.example/foo.user.js",
                updateURL="https://x.example/foo.meta.js",
            ),
        })
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())
        orchestrator.ensure_directories()
        orchestrator.main_script_path.write_text(make_main_script())
        fetcher.responses[MAIN_PROBE] = make_script({"version": "0.38.0"})

        report = asyncio.run(orchestrator.run_update())

        assert report.installed == ["external:foo"]
        assert "@version 1.1" in (external_dir / "my-foo.user.js").read_text()
        records = store.fetch(is_external)
        assert len(records) == 1
        assert records[0].identifier == "foo"
        assert records[0].version == "1.1"
        assert orchestrator.in_flight == set()

    def test_external_plugin_removed_locally_is_skipped(self, tmp_path, store, settings, external_dir):
        settings.external_folder = external_dir
        add_external(store, "foo", "1.0", downloadURL="https://x.example/foo.user.js")
        fetcher = FakeFetcher({MAIN_URL: make_main_script()})
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())

        report = asyncio.run(orchestrator.run_update())

        assert report.skipped == ["external:foo"]
        assert "https://x.example/foo.user.js" not in fetcher.requests
        assert list(external_dir.iterdir()) == []
        assert store.first(is_external).version == "1.0"

    def test_inaccessible_folder_drops_external_targets(self, tmp_path, store, settings):
        settings.external_folder = tmp_path / "gone"
        add_external(store, "foo", "1.0", downloadURL="https://x.example/foo.user.js")
        fetcher = FakeFetcher({MAIN_URL: make_main_script()})
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())

        report = asyncio.run(orchestrator.run_update())

        assert report.installed == ["main script"]
        assert "https://x.example/foo.user.js" not in fetcher.requests

    def test_external_access_released_after_run(self, tmp_path, store, settings, external_dir):
        from userscripts.external.access import FolderAccess

        settings.external_folder = external_dir
        add_external(store, "foo", "1.0", downloadURL="https://x.example/foo.user.js")
        accesses = []

        def access_factory(folder):
            access = FolderAccess(folder)
            accesses.append(access)
            return access

        fetcher = FakeFetcher({MAIN_URL: 500})
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, (), access_factory=access_factory)

        with pytest.raises(TransportError):
            asyncio.run(orchestrator.run_update())

        assert len(accesses) == 1
        assert accesses[0].holders == 0

    def _with_current_main_script(self, orchestrator, fetcher):
        orchestrator.ensure_directories()
        orchestrator.main_script_path.write_text(make_main_script("0.38.0"))
        fetcher.responses[MAIN_PROBE] = make_script({"version": "0.38.0"})

    def test_update_url_only_plugin_installs_full_script(self, tmp_path, store, settings, external_dir):
        """The `.user.js` sibling is installed, never the header-only `.meta.js`."""
        settings.external_folder = external_dir
        plugin_file = external_dir / "foo.user.js"
        plugin_file.write_text(make_script(
            {"id": "foo", "name": "Foo", "category": "Misc", "version": "1.0"},
            body="function body(){}",
        ))
        add_external(store, "foo", "1.0", updateURL="https://x.example/foo.meta.js")
        header = {
            "id": "foo", "name": "Foo", "category": "Misc", "version": "1.1",
            "updateURL": "https://x.example/foo.meta.js",
        }
        fetcher = FakeFetcher({
            "https://x.example/foo.meta.js": make_script(header, body=""),
            "https://x.example/foo.user.js": make_script(header, body="function body(){ return 2; }"),
        })
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())
        self._with_current_main_script(orchestrator, fetcher)

        report = asyncio.run(orchestrator.run_update())

        assert report.installed == ["external:foo"]
        assert fetcher.requests.count("https://x.example/foo.meta.js") == 1
        assert "https://x.example/foo.user.js" in fetcher.requests
        text = plugin_file.read_text()
        assert "function body" in text
        assert "@version 1.1" in text
        assert store.first(is_external).version == "1.1"

    def test_header_only_download_keeps_existing_plugin(self, tmp_path, store, settings, external_dir):
        settings.external_folder = external_dir
        plugin_file = external_dir / "foo.user.js"
        original = make_plugin("foo", "1.0")
        plugin_file.write_text(original)
        add_external(store, "foo", "1.0", downloadURL="https://x.example/foo.user.js")
        fetcher = FakeFetcher({
            "https://x.example/foo.user.js": make_script(
                {"id": "foo", "name": "Foo", "category": "Misc", "version": "1.1"}, body=""
            ),
        })
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())
        self._with_current_main_script(orchestrator, fetcher)

        with pytest.raises(MetadataSyntaxError) as exc_info:
            asyncio.run(orchestrator.run_update())

        assert exc_info.value.part == SyntaxPart.BODY
        assert plugin_file.read_text() == original
        assert sorted(p.name for p in external_dir.iterdir()) == ["foo.user.js"]
        assert store.first(is_external).version == "1.0"

    def test_failed_version_check_skips_full_install(self, tmp_path, store, settings):
        """A version check that raises counts as up to date; nothing is downloaded."""
        fetcher = FakeFetcher()
        orchestrator = make_orchestrator(tmp_path, store, settings, fetcher, ())
        self._with_current_main_script(orchestrator, fetcher)
        fetcher.responses[MAIN_PROBE] = ConnectionError("connection reset")

        report = asyncio.run(orchestrator.run_update())

        assert report.up_to_date == ["main script"]
        assert report.failed == []
        assert fetcher.requests == [MAIN_PROBE]
        assert MAIN_URL not in fetcher.requests
        assert orchestrator.fetch_main_script_version() == "0.38.0"
