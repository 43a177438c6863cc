"""Exception hierarchy for the steering interface.

Transport-level and handshake-level errors change the connection state.
Frame-level errors are absorbed by the bus monitor and never escalate.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .protocol.commands import HandshakeStep


class SteerLinkError(Exception):
    """Base class for all steerlink errors."""
    pass


# --- Transport ---

class TransportError(SteerLinkError):
    """Failure in the byte-level serial link."""
    pass


class NoDeviceError(TransportError):
    """No adapter could be opened (missing, unplugged, or not recognized)."""
    pass


class PermissionDeniedError(TransportError):
    """The adapter exists but the host refused access (busy or no permission)."""
    pass


class TransportTimeout(TransportError):
    """A read or write did not complete within its bound."""
    pass


class TransportIOError(TransportError):
    """The link failed while in use (device removed, driver error)."""
    pass


# --- Protocol ---

class ProtocolError(SteerLinkError):
    """Adapter command/response protocol failure."""
    pass


class ResponseTimeout(TransportTimeout, ProtocolError):
    """The prompt marker was not seen before the command deadline.

    Attributes:
        command: Command that was waiting for its reply
        partial: Text accumulated before the deadline expired
    """

    def __init__(self, command: str, partial: str = ""):
        super().__init__(f"No prompt after {command!r} (got {partial!r})")
        self.command = command
        self.partial = partial


class HandshakeError(ProtocolError):
    """A handshake step exhausted its retry budget."""

    def __init__(self, step: HandshakeStep, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Handshake step {step.name} failed: {message}")
        self.step = step
        self.cause = cause


class HandshakeFailed(HandshakeError):
    """The adapter kept answering a handshake step with an unexpected reply."""
    pass


class HandshakeTimeout(HandshakeError):
    """The adapter stopped answering during a handshake step."""
    pass


class FrameDecodeError(SteerLinkError):
    """A single bus frame could not be decoded. Monitoring continues."""

    def __init__(self, frame: str, message: str):
        super().__init__(f"{message}: {frame!r}")
        self.frame = frame
