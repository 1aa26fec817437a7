"""Shared fixtures: a fake fetcher in place of the network, script builders."""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest

from userscripts.catalog.store import CatalogStore
from userscripts.config import SettingsService
from userscripts.errors import TransportError

Response = Union[str, int, Exception]


def make_script(items: Dict[str, str], body: str = "console.log('hello');") -> str:
    """Build userscript text with a header block made of ``items``."""
    header = "\n".join(f"// @{key} {value}" for key, value in items.items())
    return f"// ==UserScript==\n{header}\n// ==/UserScript==\n\n{body}\n"


def make_plugin(
    plugin_id: str,
    version: str = "1.0",
    category: str = "Misc",
    name: Optional[str] = None,
    **extra: str,
) -> str:
    items = {
        "id": plugin_id,
        "name": name or f"IITC plugin: {plugin_id}",
        "category": category,
        "version": version,
    }
    items.update(extra)
    return make_script(items)


def make_main_script(version: str = "0.38.0") -> str:
    return make_script({
        "name": "IITC: Ingress intel map total conversion",
        "version": version,
        "description": "Total conversion for the ingress intel map.",
    })


class FakeFetcher:
    """Serves canned responses by URL.

    A response is the body text, an HTTP status (non-200 raises
    TransportError) or an exception to raise.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None, delays: Optional[Dict[str, float]] = None):
        self.responses: Dict[str, Response] = dict(responses or {})
        self.delays: Dict[str, float] = dict(delays or {})
        self.requests: List[str] = []

    async def _respond(self, url: str) -> str:
        self.requests.append(url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        response = self.responses.get(url, 404)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            raise TransportError(response, url)
        return response

    async def fetch_text(self, url: str) -> str:
        return await self._respond(url)

    async def fetch_json(self, url: str):
        return json.loads(await self._respond(url))

    async def download_to(self, url: str, directory: Path) -> Path:
        content = await self._respond(url)
        directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".download")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        return Path(temp_name)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def store(tmp_path):
    return CatalogStore(tmp_path / "catalog.json")


@pytest.fixture
def settings(tmp_path):
    return SettingsService(tmp_path / "settings.json")


@pytest.fixture
def external_dir(tmp_path):
    folder = tmp_path / "external"
    folder.mkdir()
    return folder
