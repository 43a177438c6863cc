"""Periodic driver for the connection supervisor.

The watchdog calls reconcile_once() immediately on start and then on a
fixed interval, and routes host removal notices to the supervisor.
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from ..models import RemovalNotice
from .supervisor import ConnectionSupervisor

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

DEFAULT_RECONCILE_INTERVAL = 30.0  # seconds


class Watchdog:
    """Keeps the supervisor monitoring.

    Responsibilities:
    - Reconcile on a fixed cadence on a background thread
    - Apply the disconnect-on-detach policy to removal notices

    Example:
        >>> watchdog = Watchdog(supervisor, interval=30.0)
        >>> watchdog.start()
        >>> port_watcher = PortWatcher(on_removed=watchdog.on_device_removed)
        >>> # Later...
        >>> watchdog.stop()
    """

    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        *,
        interval: float = DEFAULT_RECONCILE_INTERVAL,
        disconnect_on_detach: bool = True,
    ):
        """Initialize watchdog.

        Args:
            supervisor: Supervisor to drive
            interval: Seconds between reconciliation ticks
            disconnect_on_detach: On removal of our adapter, close and stop
                reconnecting. When False the supervisor is left in ERROR and
                the next tick reopens.
        """
        self._supervisor = supervisor
        self._interval = interval
        self._disconnect_on_detach = disconnect_on_detach

        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0

    @classmethod
    def from_settings(cls, supervisor: ConnectionSupervisor, settings: Settings) -> Watchdog:
        return cls(
            supervisor,
            interval=settings.reconcile_interval_s,
            disconnect_on_detach=settings.disconnect_on_detach,
        )

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking. The first reconciliation happens right away."""
        if self.is_running:
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._tick_loop,
            daemon=True,
            name="SupervisorWatchdog",
        )
        self._thread.start()
        logger.info(f"Watchdog started (interval={self._interval}s)")

    def stop(self, close: bool = True) -> None:
        """Stop ticking.

        Args:
            close: Also close the supervisor
        """
        self._halt()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval + 1.0)
        self._thread = None
        if close:
            self._supervisor.close()
        logger.info("Watchdog stopped")

    def tick_now(self) -> None:
        """Run the next reconciliation without waiting for the interval."""
        self._wake.set()

    def on_device_removed(self, notice: RemovalNotice) -> None:
        """Host removal callback. May be called from any thread."""
        # Halt before releasing so a tick already in flight cannot reopen.
        # handle_removal() repeats the match and is the one that decides.
        if self._disconnect_on_detach and self._supervisor.owns(notice.removed_device_id):
            self._halt()
            logger.info("Adapter detached, reconnection disabled")

        self._supervisor.handle_removal(
            notice,
            keep_error=not self._disconnect_on_detach,
        )

    def _halt(self) -> None:
        self._stop.set()
        self._wake.set()

    def _tick_loop(self) -> None:
        while not self._stop.is_set():
            status = self._supervisor.reconcile_once()
            self.ticks += 1
            logger.debug(f"Reconciled: {status.text}")
            self._wake.wait(self._interval)
            self._wake.clear()
