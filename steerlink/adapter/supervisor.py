"""Connection supervisor.

Owns the device handle, the protocol session and the bus monitor, and moves
between ConnectionStates under a single transition lock:

    CLOSED/ERROR --open()--> OPENING --handshake ok--> OPEN_IDLE
                                     --handshake fail--> ERROR
    OPEN_IDLE --start_monitor()--> OPEN_MONITORING
    OPEN_MONITORING --stop_monitor()--> OPEN_IDLE (or CLOSED with release)
    OPEN_MONITORING --transport failure--> CLOSED
    any --close()--> CLOSED
    any --matching removal notice--> CLOSED

reconcile_once() is what the periodic tick calls; it never raises.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, List, Optional

from ..errors import HandshakeError, TransportError
from ..models import AdapterSession, DeviceDescriptor, DeviceHandle, RemovalNotice, SteeringEvent
from ..protocol.decoder import FrameDecoder
from ..protocol.session import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_RESET_TIMEOUT,
    DEFAULT_RETRIES,
    ProtocolSession,
)
from ..transport.base import Transport
from .bus_monitor import DEFAULT_READ_TIMEOUT, BusMonitor, MonitorExit
from .status import ConnectionState, ConnectionStatus

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

LOCK_POLL_INTERVAL = 0.05  # seconds
REMOVED_REASON = "adapter removed"


class ConnectionSupervisor:
    """State machine around one ELM327-class adapter.

    All commands (open, close, start_monitor, stop_monitor, handle_removal)
    are idempotent and serialized on one re-entrant lock, so the
    reconciliation tick and an asynchronous removal notice can never create
    two live handles or use the transport after it was closed.

    status() does not take that lock and is safe to call from anywhere.

    Example:
        >>> supervisor = ConnectionSupervisor(SerialTransport(), decoder,
        ...                                   descriptor=DeviceDescriptor(port="/dev/ttyUSB0"))
        >>> supervisor.subscribe_events(print)
        >>> supervisor.reconcile_once().text
        'monitoring'
    """

    def __init__(
        self,
        transport: Transport,
        decoder: FrameDecoder,
        *,
        descriptor: Optional[DeviceDescriptor] = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        test_query: bool = False,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        monitor_filter: Optional[str] = None,
    ):
        """Initialize supervisor.

        Args:
            transport: Transport used to acquire the adapter
            decoder: Frame decoding strategy handed to every BusMonitor
            descriptor: Which adapter to open (default: auto-detect)
            command_timeout: Per-command reply deadline
            reset_timeout: ATZ reply deadline
            retries: Extra attempts per handshake step
            test_query: Confirm the bus answers at the end of the handshake
            read_timeout: Bound of one monitor read
            monitor_filter: Adapter filter command sent before streaming
        """
        self._transport = transport
        self._decoder = decoder
        self._descriptor = descriptor or DeviceDescriptor()
        self._command_timeout = command_timeout
        self._reset_timeout = reset_timeout
        self._retries = retries
        self._test_query = test_query
        self._read_timeout = read_timeout
        self._monitor_filter = monitor_filter

        self._lock = threading.RLock()
        self._handle: Optional[DeviceHandle] = None
        self._session: Optional[ProtocolSession] = None
        self._monitor: Optional[BusMonitor] = None

        self._status = ConnectionStatus.closed()
        self._status_lock = threading.Lock()

        self._status_callbacks: List[Callable[[ConnectionStatus], None]] = []
        self._event_callbacks: List[Callable[[SteeringEvent], None]] = []
        self._callback_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Transport,
        decoder: FrameDecoder,
    ) -> ConnectionSupervisor:
        """Build a supervisor from loaded Settings."""
        return cls(
            transport,
            decoder,
            descriptor=settings.descriptor(),
            command_timeout=settings.command_timeout_s,
            reset_timeout=settings.reset_timeout_s,
            retries=settings.handshake_retries,
            test_query=settings.test_query,
            read_timeout=settings.read_timeout_s,
            monitor_filter=settings.monitor_filter,
        )

    # --- Queries ---

    def status(self) -> ConnectionStatus:
        """Current status snapshot. Never blocks on a transition."""
        with self._status_lock:
            return self._status

    @property
    def handle(self) -> Optional[DeviceHandle]:
        return self._handle

    @property
    def adapter(self) -> Optional[AdapterSession]:
        """Negotiated adapter parameters while the device is open."""
        session = self._session
        return session.adapter if session else None

    @property
    def monitor(self) -> Optional[BusMonitor]:
        return self._monitor

    def owns(self, device_id: str) -> bool:
        """True if ``device_id`` is the currently open device.

        Waits for any transition in progress, so an open that is mid
        handshake counts as owning its device.
        """
        with self._lock:
            return self._handle is not None and self._handle.device_id == device_id

    # --- Commands ---

    def open(self) -> bool:
        """Acquire the adapter and run the handshake.

        Failures leave the supervisor in ERROR with the handle released; the
        next reconciliation tick retries.

        Returns:
            True if the device is open (already or now)
        """
        with self._lock:
            if self._status.state.holds_device:
                return True

            try:
                handle = self._transport.open(self._descriptor)
            except TransportError as e:
                logger.warning(f"Could not open adapter: {e}")
                self._set_status(ConnectionState.ERROR, reason=f"open failed: {e}")
                return False

            self._handle = handle
            self._set_status(ConnectionState.OPENING)
            logger.info(f"Adapter {handle.device_id} opened, starting handshake")

            session = ProtocolSession(
                self._transport,
                command_timeout=self._command_timeout,
                reset_timeout=self._reset_timeout,
                retries=self._retries,
                test_query=self._test_query,
            )
            try:
                session.handshake()
            except (HandshakeError, TransportError) as e:
                logger.error(f"Handshake with {handle.device_id} failed: {e}")
                self._release_handle()
                self._set_status(ConnectionState.ERROR, reason=str(e))
                return False
            except Exception:
                self._release_handle()
                self._set_status(ConnectionState.ERROR, reason="handshake crashed")
                raise

            self._session = session
            self._set_status(ConnectionState.OPEN_IDLE)
            return True

    def start_monitor(self) -> bool:
        """Start the bus monitor.

        Returns:
            True if monitoring (already or now); False if the device is not open
        """
        with self._lock:
            state = self._status.state
            if state is ConnectionState.OPEN_MONITORING:
                return True
            if state is not ConnectionState.OPEN_IDLE or self._session is None:
                logger.debug(f"Cannot start monitor in state {state.value}")
                return False

            monitor = BusMonitor(
                self._session,
                self._decoder,
                on_exit=self._on_monitor_exit,
                read_timeout=self._read_timeout,
                monitor_filter=self._monitor_filter,
            )
            monitor.subscribe_events(self._dispatch_event)
            self._monitor = monitor
            self._set_status(ConnectionState.OPEN_MONITORING)
            monitor.start()
            logger.info("Monitoring steering controls")
            return True

    def stop_monitor(self, release: bool = False) -> None:
        """Stop monitoring.

        Args:
            release: Also close the device (CLOSED) instead of keeping it
                reserved (OPEN_IDLE)
        """
        with self._lock:
            if self._status.state is not ConnectionState.OPEN_MONITORING:
                if release:
                    self._close_locked(ConnectionState.CLOSED)
                return

            monitor = self._stop_monitor_locked()
            if release or monitor.exit_reason is MonitorExit.IO_FAILURE:
                self._close_locked(ConnectionState.CLOSED, reason=_failure_reason(monitor))
            else:
                self._set_status(ConnectionState.OPEN_IDLE)

    def close(self) -> None:
        """Stop monitoring and release the device. Idempotent."""
        with self._lock:
            self._close_locked(ConnectionState.CLOSED)

    def handle_removal(self, notice: RemovalNotice, keep_error: bool = False) -> bool:
        """React to a host removal notification.

        Notices for any device other than the open one are ignored.

        Args:
            notice: The host's notification
            keep_error: End in ERROR("adapter removed") instead of CLOSED, so
                the next reconciliation tick reopens

        Returns:
            True if the notice matched and the device was released
        """
        with self._lock:
            handle = self._handle
            if handle is None or notice.removed_device_id != handle.device_id:
                logger.debug(f"Ignoring removal of unrelated device {notice.removed_device_id}")
                return False

            logger.info(f"Adapter {handle.device_id} removed")
            state = ConnectionState.ERROR if keep_error else ConnectionState.CLOSED
            self._close_locked(state, reason=REMOVED_REASON)
            return True

    def reconcile_once(self) -> ConnectionStatus:
        """Drive the supervisor one step towards monitoring.

        OPEN_IDLE starts the monitor, any state short of OPEN_MONITORING
        tries to open and then monitor, OPEN_MONITORING is left alone.
        Errors are recorded in the status reason, never raised.

        Returns:
            Status after the step
        """
        try:
            with self._lock:
                state = self._status.state
                if state is ConnectionState.OPEN_IDLE:
                    self.start_monitor()
                elif state is not ConnectionState.OPEN_MONITORING:
                    if self.open():
                        self.start_monitor()
        except Exception as e:
            logger.exception("Reconciliation failed")
            with self._lock:
                self._set_status(self._status.state, reason=f"reconcile failed: {e}")
        return self.status()

    # --- Subscriptions ---

    def subscribe_status(self, callback: Callable[[ConnectionStatus], None]) -> Callable[[], None]:
        """Subscribe to status changes.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._status_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._status_callbacks:
                    self._status_callbacks.remove(callback)

        return unsubscribe

    def subscribe_events(self, callback: Callable[[SteeringEvent], None]) -> Callable[[], None]:
        """Subscribe to steering events from every monitor run.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._event_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._event_callbacks:
                    self._event_callbacks.remove(callback)

        return unsubscribe

    # --- Internal ---

    def _stop_monitor_locked(self) -> BusMonitor:
        monitor = self._monitor
        self._monitor = None
        monitor.stop()
        return monitor

    def _close_locked(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        if self._monitor is not None:
            self._stop_monitor_locked()
        self._release_handle()
        self._set_status(state, reason=reason)

    def _release_handle(self) -> None:
        handle = self._handle
        self._handle = None
        self._session = None
        if handle is None:
            return
        try:
            self._transport.close(handle)
        except TransportError as e:
            logger.warning(f"Error releasing {handle.device_id}: {e}")
        logger.info(f"Adapter {handle.device_id} released")

    def _on_monitor_exit(
        self,
        monitor: BusMonitor,
        reason: MonitorExit,
        failure: Optional[BaseException],
    ) -> None:
        """Runs on the monitor thread when its loop ends."""
        if reason is MonitorExit.STOPPED:
            return

        # Whoever holds the lock and requested the stop owns the cleanup.
        while not self._lock.acquire(timeout=LOCK_POLL_INTERVAL):
            if monitor.stop_requested:
                return
        try:
            if self._monitor is not monitor:
                return
            self._monitor = None
            self._release_handle()
            self._set_status(ConnectionState.CLOSED, reason=_failure_reason(monitor))
        finally:
            self._lock.release()

    def _set_status(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        handle = self._handle
        status = ConnectionStatus(
            state=state,
            reason=reason,
            device_id=handle.device_id if handle else None,
            timestamp=time.time(),
        )
        with self._status_lock:
            previous = self._status
            self._status = status

        if (previous.state, previous.reason, previous.device_id) == (state, reason, status.device_id):
            return

        if state is not previous.state:
            logger.info(f"Connection {previous.state.value} -> {state.value}"
                        + (f" ({reason})" if reason else ""))

        with self._callback_lock:
            callbacks = list(self._status_callbacks)
        for callback in callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Error in status callback: {e}")

    def _dispatch_event(self, event: SteeringEvent) -> None:
        with self._callback_lock:
            callbacks = list(self._event_callbacks)
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback: {e}")


def _failure_reason(monitor: BusMonitor) -> Optional[str]:
    if monitor.exit_reason is MonitorExit.IO_FAILURE:
        return f"I/O failure: {monitor.failure}"
    return None
