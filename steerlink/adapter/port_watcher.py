"""Detects serial adapters being unplugged by polling the host's port list."""
from __future__ import annotations

import logging
import threading
from typing import Callable, FrozenSet, Optional

from ..models import RemovalNotice
from ..transport.adapter_finder import list_port_ids

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0  # seconds


class PortWatcher:
    """Emits a RemovalNotice for every port that disappears.

    Notices are sent for any vanished port, not only the supervisor's; the
    receiver matches them against its own handle.
    """

    def __init__(
        self,
        on_removed: Callable[[RemovalNotice], None],
        *,
        on_attached: Optional[Callable[[str], None]] = None,
        interval: float = DEFAULT_POLL_INTERVAL,
        list_ports: Callable[[], FrozenSet[str]] = list_port_ids,
    ):
        self._on_removed = on_removed
        self._on_attached = on_attached
        self._interval = interval
        self._list_ports = list_ports

        self._known: Optional[FrozenSet[str]] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="PortWatcher",
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=self._interval + 1.0)
        self._thread = None

    def poll_once(self) -> None:
        """Compare the port list with the previous poll and notify changes."""
        current = self._list_ports()
        previous = self._known
        self._known = current
        if previous is None:
            return

        for device_id in sorted(previous - current):
            logger.info(f"Port {device_id} removed")
            self._notify(self._on_removed, RemovalNotice(removed_device_id=device_id))

        if self._on_attached is not None:
            for device_id in sorted(current - previous):
                logger.info(f"Port {device_id} attached")
                self._notify(self._on_attached, device_id)

    def _poll_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Error listing serial ports: {e}")
            self._stop.wait(self._interval)

    @staticmethod
    def _notify(callback, value) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.error(f"Error in port watcher callback: {e}")
