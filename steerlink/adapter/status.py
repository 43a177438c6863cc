"""Connection state reported to the presentation layer."""
from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

STATUS_TEXT_MONITORING = "monitoring"
STATUS_TEXT_STOPPED = "stopped"


class ConnectionState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN_IDLE = "open_idle"              # device open, adapter not yet monitoring
    OPEN_MONITORING = "open_monitoring"
    ERROR = "error"

    @property
    def holds_device(self) -> bool:
        """True for the states in which a DeviceHandle is live."""
        return self in (
            ConnectionState.OPENING,
            ConnectionState.OPEN_IDLE,
            ConnectionState.OPEN_MONITORING,
        )


@dataclass(frozen=True)
class ConnectionStatus:
    """Snapshot of the supervisor.

    Attributes:
        state: Current ConnectionState
        reason: Why the last failure happened (ERROR) or the last recorded problem
        device_id: Id of the open device, None when no handle is live
        timestamp: Local time the snapshot was taken
    """
    state: ConnectionState
    reason: Optional[str] = None
    device_id: Optional[str] = None
    timestamp: float = 0.0

    @property
    def is_monitoring(self) -> bool:
        return self.state is ConnectionState.OPEN_MONITORING

    @property
    def text(self) -> str:
        """Short human-readable status."""
        if self.state is ConnectionState.OPEN_MONITORING:
            return STATUS_TEXT_MONITORING
        if self.state is ConnectionState.ERROR and self.reason:
            return f"{STATUS_TEXT_STOPPED} ({self.reason})"
        return STATUS_TEXT_STOPPED

    @classmethod
    def closed(cls, reason: Optional[str] = None) -> ConnectionStatus:
        return cls(state=ConnectionState.CLOSED, reason=reason, timestamp=time.time())
