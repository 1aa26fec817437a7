"""External folder monitor - polls the folder and reports content changes."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from userscripts.constants import USER_SCRIPT_SUFFIX
from userscripts.external.access import FolderAccess

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Tuple[int, int]]


class ExternalFolderMonitor:
    """Watch the external folder and invoke ``action`` when its scripts change.

    Access to the folder is held from ``start()`` until ``stop()``.
    """

    def __init__(
        self,
        folder: Path,
        action: Callable[[Path], None],
        poll_interval: float = 1.0,
        access_factory: Callable[[Path], FolderAccess] = FolderAccess,
    ):
        self.folder = folder
        self.action = action
        self.poll_interval = poll_interval
        self._access = access_factory(folder)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._snapshot: Snapshot = {}

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        """Acquire folder access and start the polling thread.

        Raises:
            ResourceAccessError: the folder cannot be accessed
            OSError: the folder could not be listed; access is released
        """
        if self._thread is not None:
            return
        self._access.acquire()
        try:
            self._snapshot = self._take_snapshot()
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._watch_loop, daemon=True)
            self._thread.start()
        except BaseException:
            self._thread = None
            self._access.release()
            raise
        logger.info(f"Monitoring external folder {self.folder}")

    def stop(self) -> None:
        """Stop polling and release folder access."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=max(2.0, self.poll_interval * 2))
        self._thread = None
        self._access.release()
        logger.info(f"Stopped monitoring {self.folder}")

    def _watch_loop(self) -> None:
        """Main polling loop."""
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.check_for_changes()
            except Exception as e:
                logger.error(f"Monitor loop error: {e}", exc_info=True)

    def check_for_changes(self) -> bool:
        """Compare against the last snapshot; run ``action`` on a change.

        Returns:
            True if a change was detected
        """
        snapshot = self._take_snapshot()
        if snapshot == self._snapshot:
            return False
        self._snapshot = snapshot
        logger.info(f"External folder changed: {self.folder}")
        self.action(self.folder)
        return True

    def _take_snapshot(self) -> Snapshot:
        snapshot: Snapshot = {}
        if not self.folder.is_dir():
            return snapshot
        for item in self.folder.iterdir():
            if not item.name.endswith(USER_SCRIPT_SUFFIX):
                continue
            try:
                stat = item.stat()
            except FileNotFoundError:
                continue
            snapshot[item.name] = (stat.st_mtime_ns, stat.st_size)
        return snapshot
