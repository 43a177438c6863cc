"""Continuous bus monitor turning adapter frames into steering events.

The monitor puts the adapter into ATMA (monitor all) streaming mode and
reads it line by line on its own thread. Every read is bounded, so a stop
request is seen within one read interval.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from ..errors import FrameDecodeError, TransportError, TransportIOError
from ..models import ButtonChange, SteeringEvent
from ..protocol.commands import (
    MONITOR_ALL,
    PROMPT,
    STREAM_INTERRUPTIONS,
    STREAM_NOISE,
    is_error_reply,
)
from ..protocol.decoder import FrameDecoder
from ..protocol.session import ProtocolSession

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 0.2  # seconds


class MonitorExit(Enum):
    STOPPED = "stopped"          # stop() was called
    IO_FAILURE = "io_failure"    # the transport failed under the monitor


ExitCallback = Callable[["BusMonitor", MonitorExit, Optional[BaseException]], None]


class BusMonitor:
    """Reads bus frames and publishes SteeringEvents.

    A frame that fails to decode is logged and discarded; it never stops the
    loop. The loop ends only on stop() or a transport failure, and reports
    either through ``on_exit`` instead of raising.

    Example:
        >>> monitor = BusMonitor(session, decoder, on_exit=handle_exit)
        >>> monitor.subscribe_events(lambda e: print(e.button_id, e.edge))
        >>> monitor.start()
        >>> # Later...
        >>> monitor.stop()
    """

    def __init__(
        self,
        session: ProtocolSession,
        decoder: FrameDecoder,
        *,
        on_exit: Optional[ExitCallback] = None,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        monitor_filter: Optional[str] = None,
        monitor_command: str = MONITOR_ALL,
    ):
        """Initialize bus monitor.

        Args:
            session: Session whose handshake already succeeded
            decoder: Vehicle-specific frame decoding strategy
            on_exit: Called once from the monitor thread when the loop ends
            read_timeout: Bound of each stream read, i.e. the stop latency
            monitor_filter: Optional command sent before streaming (e.g. ``ATCRA 3E9``)
            monitor_command: Streaming command
        """
        self._session = session
        self._decoder = decoder
        self._on_exit = on_exit
        self._read_timeout = read_timeout
        self._monitor_filter = monitor_filter
        self._monitor_command = monitor_command

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._event_callbacks: List[Callable[[SteeringEvent], None]] = []
        self._callback_lock = threading.Lock()

        self._last_timestamp = 0.0
        self.frames_seen = 0
        self.decode_errors = 0
        self.exit_reason: Optional[MonitorExit] = None
        self.failure: Optional[BaseException] = None

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the monitor thread. Calling it twice has no effect."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="BusMonitor",
        )
        self._thread.start()
        logger.debug("Bus monitor started")

    def request_stop(self) -> None:
        """Ask the loop to exit after the current bounded read."""
        self._stop.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Request stop and wait for the thread to finish.

        Args:
            timeout: Join timeout, default is one read plus one command round trip
        """
        self.request_stop()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        if timeout is None:
            timeout = self._read_timeout + 2 * self._session.command_timeout + 1.0
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Bus monitor did not stop within %.1fs", timeout)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # --- Events ---

    def subscribe_events(self, callback: Callable[[SteeringEvent], None]) -> Callable[[], None]:
        """Subscribe to steering events.

        Callbacks run on the monitor thread, in frame arrival order.

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

    # --- Loop ---

    def _run(self) -> None:
        reason = MonitorExit.STOPPED
        failure: Optional[BaseException] = None

        try:
            self._decoder.reset()
            self._apply_filter()
            self._arm()

            while not self._stop.is_set():
                line = self._session.read_line(self._read_timeout)
                if line is None:
                    continue
                self.process_line(line)

        except TransportError as e:
            reason = MonitorExit.IO_FAILURE
            failure = e
            if not self._stop.is_set():
                logger.error(f"Bus monitor transport failure: {e}")
        except Exception as e:
            reason = MonitorExit.IO_FAILURE
            failure = e
            logger.exception("Unexpected error in bus monitor loop")
        else:
            self._leave_streaming()

        self.exit_reason = reason
        self.failure = failure
        logger.debug(f"Bus monitor exiting ({reason.value})")

        if self._on_exit is not None:
            try:
                self._on_exit(self, reason, failure)
            except Exception:
                logger.exception("Error in bus monitor exit callback")

    def process_line(self, line: str) -> None:
        """Handle one line read from the stream."""
        if line == PROMPT.decode("ascii"):
            # Adapter dropped back to the prompt; resume streaming
            if not self._stop.is_set():
                logger.info("Adapter left monitor mode, re-arming")
                self._arm()
            return

        upper = line.upper()
        if any(marker in upper for marker in STREAM_INTERRUPTIONS):
            logger.warning(f"Adapter interrupted monitoring: {line}")
            return
        if upper in STREAM_NOISE or upper == self._monitor_command.upper():
            return

        self.frames_seen += 1
        try:
            changes = self._decoder.decode(line)
        except FrameDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"Discarding frame: {e}")
            return
        except Exception:
            self.decode_errors += 1
            logger.exception(f"Decoder failed on frame {line!r}")
            return

        for change in changes:
            self._emit(change)

    def _apply_filter(self) -> None:
        if not self._monitor_filter:
            return
        reply = self._session.send_command(self._monitor_filter)
        if is_error_reply(reply):
            logger.warning(f"Adapter rejected filter {self._monitor_filter!r}: {reply!r}")

    def _arm(self) -> None:
        self._session.send_streaming_command(self._monitor_command)

    def _leave_streaming(self) -> None:
        try:
            self._session.interrupt()
        except TransportIOError as e:
            logger.warning(f"Could not stop adapter streaming: {e}")
        except TransportError as e:
            logger.warning(f"No prompt after stopping stream: {e}")

    def _emit(self, change: ButtonChange) -> None:
        now = time.monotonic()
        if now <= self._last_timestamp:
            now = math.nextafter(self._last_timestamp, math.inf)
        self._last_timestamp = now

        event = SteeringEvent(button_id=change.button_id, edge=change.edge, timestamp=now)
        logger.debug(f"Steering event: {event}")

        with self._callback_lock:
            callbacks = list(self._event_callbacks)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in event callback: {e}")
