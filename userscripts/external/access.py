"""Scoped access to the user-granted external folder."""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from userscripts.errors import ResourceAccessError

logger = logging.getLogger(__name__)


class FolderAccess:
    """Acquire/release guard for the external folder.

    Every code path that touches the folder runs inside ``access()`` so the
    grant is released on success, error and cancellation alike.
    """

    def __init__(self, folder: Path):
        self.folder = folder
        self._lock = threading.Lock()
        self._holders = 0

    def acquire(self) -> Path:
        """Start accessing the folder.

        Raises:
            ResourceAccessError: the folder is missing, not a directory, or
                not readable/listable
        """
        if not self.folder.is_dir():
            raise ResourceAccessError(f"External folder is not available: {self.folder}")
        if not os.access(self.folder, os.R_OK | os.X_OK):
            raise ResourceAccessError(f"Permission denied for external folder: {self.folder}")
        with self._lock:
            self._holders += 1
        logger.debug(f"Acquired access to {self.folder}")
        return self.folder

    def release(self) -> None:
        """Stop accessing the folder."""
        with self._lock:
            if self._holders == 0:
                logger.warning(f"Unbalanced release of {self.folder}")
                return
            self._holders -= 1
        logger.debug(f"Released access to {self.folder}")

    @property
    def holders(self) -> int:
        """Number of outstanding acquisitions."""
        with self._lock:
            return self._holders

    @contextmanager
    def access(self) -> Iterator[Path]:
        folder = self.acquire()
        try:
            yield folder
        finally:
            self.release()
