"""HTTP transport - fetches script text and downloads scripts to disk."""

import json
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import aiohttp

from userscripts.errors import TransportError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class ScriptFetcher:
    """Fetches remote userscripts over HTTP.

    Timeouts are aiohttp's defaults; no retries. Use as an async context
    manager to share one ClientSession across many requests, otherwise each
    request opens its own session.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> "ScriptFetcher":
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None:
            yield self._session
            return
        async with aiohttp.ClientSession() as session:
            yield session

    async def fetch_text(self, url: str) -> str:
        """Fetch ``url`` and return the body as text.

        Raises:
            TransportError: on a non-200 response
        """
        async with self._session_scope() as session:
            async with session.get(url) as response:
                if response.status != 200:
                    logger.warning(f"[Fetcher] HTTP {response.status}: {url}")
                    raise TransportError(response.status, url)
                return await response.text()

    async def fetch_json(self, url: str) -> Any:
        """Fetch ``url`` and decode the body as JSON."""
        return json.loads(await self.fetch_text(url))

    async def download_to(self, url: str, directory: Path) -> Path:
        """Download ``url`` into a private temporary file inside ``directory``.

        The temporary file is removed if the download fails for any reason.

        Args:
            url: Source URL
            directory: Directory to create the temporary file in (same
                filesystem as the final destination)

        Returns:
            Path of the temporary file; the caller owns it

        Raises:
            TransportError: on a non-200 response
        """
        directory.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".download")
        temp_path = Path(temp_name)
        succeed = False
        try:
            with os.fdopen(fd, "wb") as f:
                async with self._session_scope() as session:
                    async with session.get(url) as response:
                        if response.status != 200:
                            logger.warning(f"[Fetcher] HTTP {response.status}: {url}")
                            raise TransportError(response.status, url)
                        async for chunk in response.content.iter_chunked(_CHUNK_SIZE):
                            f.write(chunk)
            succeed = True
            logger.debug(f"[Fetcher] Downloaded {url} to {temp_path}")
            return temp_path
        finally:
            if not succeed:
                temp_path.unlink(missing_ok=True)
