"""Line-oriented command protocol on top of a Transport.

Commands are ASCII lines terminated by a carriage return. Replies are
accumulated until the adapter prints its prompt byte (``>``) or the
per-command deadline expires.
"""
from __future__ import annotations

import logging
import time
from typing import List, Optional

from ..errors import (
    HandshakeFailed,
    HandshakeTimeout,
    ResponseTimeout,
    TransportTimeout,
)
from ..models import AdapterSession
from ..transport.base import Transport
from .commands import (
    AUTO_PROTOCOL_ID,
    COMMAND_TERMINATOR,
    DESCRIBE_PROTOCOL_NUMBER,
    LINE_TERMINATOR,
    PROMPT,
    STOP_STREAMING,
    HandshakeStep,
    is_error_reply,
    parse_version,
)

logger = logging.getLogger(__name__)

DEFAULT_COMMAND_TIMEOUT = 2.0  # seconds
DEFAULT_RESET_TIMEOUT = 5.0    # seconds, ATZ reboots the adapter
DEFAULT_RETRIES = 2            # retries per handshake step after the first attempt
READ_SLICE = 0.1               # seconds per bounded transport read
READ_CHUNK_SIZE = 256          # bytes


class ProtocolSession:
    """Command/response session with an ELM327-class adapter.

    Responsibilities:
    - Frame commands and collect replies up to the prompt
    - Run the initialization handshake with per-step retries
    - Split the ATMA stream into lines for the bus monitor

    Purely request/response: nothing here runs in the background.

    Example:
        >>> session = ProtocolSession(transport, retries=2)
        >>> adapter = session.handshake()
        >>> adapter.adapter_version
        'ELM327 v1.5'
    """

    def __init__(
        self,
        transport: Transport,
        *,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        test_query: bool = False,
        read_slice: float = READ_SLICE,
    ):
        """Initialize session.

        Args:
            transport: Open transport to the adapter
            command_timeout: Deadline for a regular command reply
            reset_timeout: Deadline for the ATZ reply
            retries: Extra attempts per handshake step
            test_query: Finish the handshake with a 0100 query to confirm the bus answers
            read_slice: Upper bound of a single transport read
        """
        self._transport = transport
        self._command_timeout = command_timeout
        self._reset_timeout = reset_timeout
        self._retries = max(0, retries)
        self._test_query = test_query
        self._read_slice = read_slice

        self._rx = bytearray()
        self._streaming = False
        self._adapter: Optional[AdapterSession] = None

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def adapter(self) -> Optional[AdapterSession]:
        """Parameters from the last successful handshake, or None."""
        return self._adapter

    @property
    def command_timeout(self) -> float:
        return self._command_timeout

    # --- Commands ---

    def send_command(self, command: str, timeout: Optional[float] = None) -> str:
        """Send one command and return its reply without the prompt.

        Raises:
            ResponseTimeout: No prompt before the deadline
            TransportTimeout: The write did not complete
            TransportIOError: The link failed
        """
        timeout = self._command_timeout if timeout is None else timeout
        self._write_line(command, timeout)
        reply = self.read_until_prompt(timeout, command=command)
        logger.debug(f"{command!r} -> {reply!r}")
        return reply

    def send_streaming_command(self, command: str) -> None:
        """Send a command whose reply is an open-ended stream (e.g. ATMA).

        The caller consumes the stream with read_line().
        """
        self._write_line(command, self._command_timeout)
        self._streaming = True

    @property
    def is_streaming(self) -> bool:
        """True from a streaming command until the adapter's prompt is seen."""
        return self._streaming

    def interrupt(self, timeout: Optional[float] = None) -> str:
        """Leave a streaming mode and wait for the prompt.

        The stop byte is only written while the adapter is still streaming.
        At the prompt a bare CR repeats the last command, which would
        restart the stream.

        Returns:
            Whatever the adapter printed before the prompt (usually ``STOPPED``)
        """
        timeout = self._command_timeout if timeout is None else timeout
        if self._prompt_pending():
            return self.read_until_prompt(timeout, command="<interrupt>")
        if not self._streaming:
            return ""
        self._transport.write(STOP_STREAMING, timeout)
        return self.read_until_prompt(timeout, command="<interrupt>")

    def _prompt_pending(self) -> bool:
        """Whether the adapter already printed its prompt that we have not consumed."""
        if not self._streaming:
            return False
        if PROMPT not in self._rx:
            try:
                self._rx.extend(self._transport.read(READ_CHUNK_SIZE, 0))
            except TransportTimeout:
                pass
        return PROMPT in self._rx

    def read_until_prompt(self, timeout: float, command: str = "") -> str:
        """Accumulate input until the prompt byte or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while True:
            idx = self._rx.find(PROMPT)
            if idx != -1:
                reply = bytes(self._rx[:idx])
                del self._rx[:idx + len(PROMPT)]
                self._streaming = False
                return _decode(reply).strip()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                partial = _decode(bytes(self._rx)).strip()
                self._rx.clear()
                raise ResponseTimeout(command, partial)

            try:
                self._rx.extend(
                    self._transport.read(READ_CHUNK_SIZE, min(remaining, self._read_slice))
                )
            except TransportTimeout:
                continue

    def read_line(self, timeout: float) -> Optional[str]:
        """Return the next non-empty line of a stream.

        Performs at most one bounded transport read. A bare prompt is
        returned as ``">"`` so callers can tell the adapter left streaming
        mode.

        Returns:
            Line text without terminator, or None if no complete line arrived
        """
        line = self._pop_line()
        if line is not None:
            return line

        try:
            self._rx.extend(self._transport.read(READ_CHUNK_SIZE, timeout))
        except TransportTimeout:
            return None
        return self._pop_line()

    def _pop_line(self) -> Optional[str]:
        while True:
            cr = self._rx.find(LINE_TERMINATOR)
            pr = self._rx.find(PROMPT)
            ends = [i for i in (cr, pr) if i != -1]
            if not ends:
                return None

            end = min(ends)
            if end == pr:
                if end == 0:
                    del self._rx[:len(PROMPT)]
                    self._streaming = False
                    return PROMPT.decode("ascii")
                raw = bytes(self._rx[:end])
                del self._rx[:end]
            else:
                raw = bytes(self._rx[:end])
                del self._rx[:end + len(LINE_TERMINATOR)]

            text = _decode(raw).strip()
            if text:
                return text

    def _write_line(self, command: str, timeout: float) -> None:
        self._rx.clear()
        self._streaming = False
        self._transport.flush_input()
        self._transport.write(command.encode("ascii") + COMMAND_TERMINATOR, timeout)

    # --- Handshake ---

    def handshake(self) -> AdapterSession:
        """Initialize the adapter.

        Steps run in HandshakeStep order. Each is attempted ``1 + retries``
        times before the whole handshake fails.

        Returns:
            Negotiated AdapterSession

        Raises:
            HandshakeFailed: A step kept getting an unexpected reply
            HandshakeTimeout: A step's last attempt got no reply
            TransportIOError: The link failed
        """
        self._adapter = None
        steps: List[HandshakeStep] = [
            HandshakeStep.RESET,
            HandshakeStep.ECHO_OFF,
            HandshakeStep.LINEFEEDS_OFF,
            HandshakeStep.HEADERS_OFF,
            HandshakeStep.AUTO_PROTOCOL,
        ]
        if self._test_query:
            steps.append(HandshakeStep.TEST_QUERY)

        replies = {step: self._run_step(step) for step in steps}

        protocol_id = AUTO_PROTOCOL_ID
        if self._test_query:
            protocol_id = self._describe_protocol()

        self._adapter = AdapterSession(
            adapter_version=parse_version(replies[HandshakeStep.RESET]),
            echo_off=True,
            linefeeds_off=True,
            headers_off=True,
            protocol_id=protocol_id,
            command_timeout=self._command_timeout,
            retry_budget=self._retries,
        )
        logger.info(
            f"Handshake complete: {self._adapter.adapter_version}, protocol {protocol_id}"
        )
        return self._adapter

    def _run_step(self, step: HandshakeStep) -> str:
        timeout = self._reset_timeout if step is HandshakeStep.RESET else self._command_timeout
        attempts = self._retries + 1
        last_timeout: Optional[TransportTimeout] = None
        last_reply = ""

        for attempt in range(1, attempts + 1):
            try:
                reply = self.send_command(step.command, timeout)
            except TransportTimeout as e:
                last_timeout = e
                logger.warning(f"{step.name}: no reply (attempt {attempt}/{attempts})")
                continue

            if step.expected.search(reply) and not is_error_reply(reply):
                return reply

            last_timeout = None
            last_reply = reply
            logger.warning(
                f"{step.name}: unexpected reply {reply!r} (attempt {attempt}/{attempts})"
            )

        if last_timeout is not None:
            raise HandshakeTimeout(step, f"no reply after {attempts} attempts", last_timeout)
        raise HandshakeFailed(step, f"unexpected reply {last_reply!r} after {attempts} attempts")

    def _describe_protocol(self) -> str:
        try:
            reply = self.send_command(DESCRIBE_PROTOCOL_NUMBER)
        except ResponseTimeout as e:
            logger.warning(f"Could not read negotiated protocol: {e}")
            return AUTO_PROTOCOL_ID
        if not reply or is_error_reply(reply):
            logger.warning(f"Unexpected protocol description {reply!r}")
            return AUTO_PROTOCOL_ID
        return reply.split()[-1]


def _decode(raw: bytes) -> str:
    # Some adapters emit NUL bytes around resets
    return raw.replace(b"\x00", b"").decode("ascii", errors="ignore")
