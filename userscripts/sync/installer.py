"""Atomic installer - download, validate, then replace the destination."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, TypeVar

from userscripts.errors import FileSystemError
from userscripts.sync.transport import ScriptFetcher

logger = logging.getLogger(__name__)

M = TypeVar("M")

Validator = Callable[[str], M]


def replace_file(source: Path, destination: Path) -> None:
    """Move ``source`` over ``destination`` in one rename.

    Both paths must be on the same filesystem; readers observe either the
    old file or the new one.
    """
    try:
        os.replace(source, destination)
    except OSError as e:
        raise FileSystemError(f"Unable to move {source} to {destination}: {e}") from e


def write_atomically(destination: Path, content: str) -> None:
    """Write ``content`` to a sibling temporary file and replace ``destination``."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=destination.parent, prefix=".", suffix=".write")
    temp_path = Path(temp_name)
    succeed = False
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        replace_file(temp_path, destination)
        succeed = True
    finally:
        if not succeed:
            temp_path.unlink(missing_ok=True)


class AtomicInstaller:
    """Installs remote scripts so the destination is never half-written."""

    def __init__(self, fetcher: ScriptFetcher):
        self.fetcher = fetcher

    async def install(
        self,
        source_url: str,
        destination: Path,
        validate: Validator,
        require_existing: bool = False,
    ) -> Optional[M]:
        """Fetch, validate and install a script.

        Args:
            source_url: URL of the script content
            destination: Final path of the script
            validate: Called with the fetched text; returns the parsed
                metadata or raises to abort the install
            require_existing: Skip the install when ``destination`` does not
                exist (the user removed an external file)

        Returns:
            The value returned by ``validate``, or None if skipped

        Raises:
            TransportError: non-200 response
            MetadataSyntaxError, MetadataDecodeError: validation failed
            FileSystemError: the destination could not be replaced
        """
        if require_existing and not destination.exists():
            logger.info(f"[Installer] Skipped {destination.name}: file was removed locally")
            return None

        temp_path = await self.fetcher.download_to(source_url, destination.parent)
        succeed = False
        try:
            content = temp_path.read_text(encoding="utf-8")
            metadata = validate(content)

            if require_existing and not destination.exists():
                logger.info(f"[Installer] Skipped {destination.name}: file was removed locally")
                return None

            replace_file(temp_path, destination)
            succeed = True
            logger.info(f"[Installer] Installed {destination.name} from {source_url}")
            return metadata
        finally:
            if not succeed:
                temp_path.unlink(missing_ok=True)
