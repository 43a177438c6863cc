"""Immutable data models for the adapter connection and steering events.

All models are frozen dataclasses so they can be handed between the
reconciliation thread, the bus monitor thread and listeners without copying.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

DEFAULT_BAUDRATE = 38400


class Edge(Enum):
    """Direction of a button transition."""
    PRESSED = "pressed"
    RELEASED = "released"


@dataclass(frozen=True)
class DeviceDescriptor:
    """What to open.

    Attributes:
        port: Explicit serial port path, or None to auto-detect by USB IDs
        vendor_id: USB vendor ID filter used during auto-detection
        product_id: USB product ID filter used during auto-detection
        baudrate: Serial baud rate
    """
    port: Optional[str] = None
    vendor_id: Optional[int] = None
    product_id: Optional[int] = None
    baudrate: int = DEFAULT_BAUDRATE


@dataclass(frozen=True)
class DeviceHandle:
    """The currently open adapter.

    Attributes:
        device_id: Host-assigned identifier, matched against removal notices
        vendor_id: USB vendor ID, if the host reported one
        product_id: USB product ID, if the host reported one
        port: Serial port path the handle was opened on
    """
    device_id: str
    vendor_id: Optional[int]
    product_id: Optional[int]
    port: str


@dataclass(frozen=True)
class AdapterSession:
    """Protocol parameters negotiated by a successful handshake.

    Valid for a single open/close cycle; rebuilt on every re-open.
    """
    adapter_version: str
    echo_off: bool
    linefeeds_off: bool
    headers_off: bool
    protocol_id: str
    command_timeout: float
    retry_budget: int


@dataclass(frozen=True)
class ButtonChange:
    """Decoded, not yet timestamped, button transition."""
    button_id: int
    edge: Edge


@dataclass(frozen=True)
class SteeringEvent:
    """A steering-wheel button transition.

    Attributes:
        button_id: Vehicle-specific button number
        edge: PRESSED or RELEASED
        timestamp: Monotonic clock reading, strictly increasing per monitor run
    """
    button_id: int
    edge: Edge
    timestamp: float


@dataclass(frozen=True)
class RemovalNotice:
    """Host notification that a device went away."""
    removed_device_id: str
