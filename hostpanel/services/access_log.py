import threading
from pathlib import Path
from typing import Optional

import structlog

from hostpanel.services.notifier import Notifier

logger = structlog.get_logger(__name__)


class AccessLogTailer:
    """
    Follows the nginx access log and pushes every appended chunk to the
    broadcast sink as an ``nginx_access`` event.

    Reading starts at the end of the file present at the first poll. A
    truncated or rotated file (new inode) is read again from the start.
    """

    def __init__(
        self,
        path: str,
        notifier: Notifier,
        poll_interval: float = 1.0,
        max_chunk_bytes: int = 64 * 1024,
    ):
        self.path = Path(path)
        self.notifier = notifier
        self.poll_interval = poll_interval
        self.max_chunk_bytes = max_chunk_bytes
        self._offset: Optional[int] = None
        self._inode: Optional[int] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll(self) -> Optional[str]:
        """Publish whatever was appended since the last poll and return it."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            if self._offset is not None:
                # rotated away; whatever shows up next is read from the start
                self._offset, self._inode = 0, None
            return None

        if self._offset is None:
            self._offset, self._inode = stat.st_size, stat.st_ino
            return None
        if stat.st_ino != self._inode or stat.st_size < self._offset:
            self._offset, self._inode = 0, stat.st_ino
        if stat.st_size == self._offset:
            return None

        with self.path.open("rb") as handle:
            handle.seek(self._offset)
            data = handle.read(self.max_chunk_bytes)
        self._offset += len(data)

        text = data.decode("utf-8", errors="replace")
        self.notifier.broadcast("nginx_access", text)
        return text

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="access-log", daemon=True)
        self._thread.start()
        logger.info("access_log_tailing_started", path=str(self.path))

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            try:
                self.poll()
            except OSError as exc:
                logger.warning("access_log_read_failed", path=str(self.path), error=str(exc))
