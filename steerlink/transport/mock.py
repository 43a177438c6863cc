"""
Mock transport simulating an ELM327 adapter.

Answers AT commands from a reply table, honours echo on/off, streams pushed
frames while in ATMA mode and leaves streaming when any byte is written.
At the prompt a bare CR repeats the previous command, as the real adapter
does.
Failures (missing device, silent adapter, unplug mid-stream) can be injected
from another thread, which makes it usable both in unit tests and in the
hardware-free demo.
"""
from __future__ import annotations

import itertools
import threading
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

from .base import Transport
from ..errors import TransportError, TransportIOError, TransportTimeout
from ..models import DeviceDescriptor, DeviceHandle

MOCK_PORT = "mock://elm327"
MOCK_VID = 0x0403
MOCK_PID = 0x6001

DEFAULT_REPLIES: Dict[str, str] = {
    "ATZ": "\rELM327 v1.5",
    "ATE0": "OK",
    "ATL0": "OK",
    "ATH0": "OK",
    "ATSP0": "OK",
    "0100": "SEARCHING...\r41 00 BE 3E B8 11",
    "ATDPN": "A6",
}


class MockTransport(Transport):
    """
    In-memory ELM327 simulator.

    Attributes:
        replies: Command -> reply text (without prompt). Unknown commands get ``?``.
        written: Every command executed, in order. A bare CR that repeats the
            previous command lists it again.
        open_error: Exception raised by the next open() calls while set.
        open_count: Number of successful open() calls.
    """

    def __init__(self, replies: Optional[Dict[str, str]] = None) -> None:
        self.replies: Dict[str, str] = dict(DEFAULT_REPLIES)
        if replies:
            self.replies.update(replies)

        self.written: List[str] = []
        self.open_error: Optional[TransportError] = None
        self.open_count = 0
        self.call_count: Dict[str, int] = defaultdict(int)

        self._handle: Optional[DeviceHandle] = None
        self._cond = threading.Condition()
        self._output = bytearray()
        self._overrides: Dict[str, Deque[Optional[str]]] = defaultdict(deque)
        self._pending_frames: Deque[str] = deque()
        self._echo = True
        self._streaming = False
        self._io_error: Optional[str] = None
        self._last_command: Optional[str] = None
        self._ids = itertools.count(1)

    # --- Scripting ---

    def queue_reply(self, command: str, reply: Optional[str]) -> None:
        """Override the next reply to ``command``. ``None`` means no reply at all."""
        with self._cond:
            self._overrides[command].append(reply)

    def push_frame(self, frame: str) -> None:
        """Put one frame on the bus. Delivered while the adapter is streaming."""
        with self._cond:
            self._pending_frames.append(frame)
            if self._streaming:
                self._drain_frames()
            self._cond.notify_all()

    def interrupt_stream(self, message: str = "BUFFER FULL") -> None:
        """Make the adapter leave ATMA on its own, printing ``message``."""
        with self._cond:
            if self._streaming:
                self._streaming = False
                self._output.extend(f"{message}\r\r>".encode("ascii"))
                self._cond.notify_all()

    def fail_io(self, message: str = "device unplugged") -> None:
        """Make every following read and write fail like a removed device."""
        with self._cond:
            self._io_error = message
            self._cond.notify_all()

    @property
    def is_streaming(self) -> bool:
        with self._cond:
            return self._streaming

    # --- Transport ---

    @property
    def handle(self) -> Optional[DeviceHandle]:
        return self._handle

    def open(self, descriptor: DeviceDescriptor) -> DeviceHandle:
        with self._cond:
            if self._handle is not None:
                raise TransportError(f"Transport already open on {self._handle.port}")
            if self.open_error is not None:
                raise self.open_error

            port = descriptor.port or MOCK_PORT
            self._handle = DeviceHandle(
                device_id=port if descriptor.port else f"{MOCK_PORT}/{next(self._ids)}",
                vendor_id=MOCK_VID,
                product_id=MOCK_PID,
                port=port,
            )
            self._output.clear()
            self._echo = True
            self._streaming = False
            self._io_error = None
            self._last_command = None
            self.open_count += 1
            return self._handle

    def close(self, handle: DeviceHandle) -> None:
        with self._cond:
            if self._handle is None or handle != self._handle:
                return
            self._handle = None
            self._streaming = False
            self._output.clear()
            self._cond.notify_all()

    def write(self, data: bytes, timeout: float) -> None:
        with self._cond:
            self._check_io()
            if self._streaming:
                self._streaming = False
                self._output.extend(b"STOPPED\r\r>")
                self._cond.notify_all()
                return

            command = data.decode("ascii").strip()
            if not command:
                # A bare CR at the prompt repeats the previous command
                command = self._last_command
                if command is None:
                    return
            self._last_command = command
            self.written.append(command)
            self.call_count[command] += 1
            self._respond(command)
            self._cond.notify_all()

    def read(self, max_bytes: int, timeout: float) -> bytes:
        with self._cond:
            self._check_io()
            if not self._output:
                self._cond.wait_for(
                    lambda: bool(self._output) or self._io_error is not None or self._handle is None,
                    timeout=timeout,
                )
                self._check_io()
            if not self._output:
                raise TransportTimeout(f"No data within {timeout:.3f}s")

            data = bytes(self._output[:max_bytes])
            del self._output[:max_bytes]
            return data

    def flush_input(self) -> None:
        with self._cond:
            self._check_io()
            self._output.clear()

    # --- Internals ---

    def _check_io(self) -> None:
        if self._handle is None:
            raise TransportIOError("Mock port not open")
        if self._io_error is not None:
            raise TransportIOError(self._io_error)

    def _respond(self, command: str) -> None:
        echo = f"{command}\r" if self._echo else ""
        key = command.upper().replace(" ", "")

        if self._overrides[command]:
            reply = self._overrides[command].popleft()
            if reply is None:
                return
        elif key == "ATMA":
            self._output.extend(echo.encode("ascii"))
            self._streaming = True
            self._drain_frames()
            return
        else:
            reply = self.replies.get(command, self.replies.get(key, "?"))

        if key == "ATZ":
            self._echo = True
        elif key == "ATE0" and "OK" in reply:
            self._echo = False

        self._output.extend(f"{echo}{reply}\r\r>".encode("ascii"))

    def _drain_frames(self) -> None:
        while self._pending_frames:
            self._output.extend(f"{self._pending_frames.popleft()}\r".encode("ascii"))
