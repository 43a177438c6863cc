"""Steering wheel interface for ELM327-class OBD-II adapters."""

from .adapter import (
    BusMonitor,
    ConnectionState,
    ConnectionStatus,
    ConnectionSupervisor,
    PortWatcher,
    Watchdog,
)
from .config import Settings
from .models import (
    AdapterSession,
    ButtonChange,
    DeviceDescriptor,
    DeviceHandle,
    Edge,
    RemovalNotice,
    SteeringEvent,
)
from .protocol import BitmaskButtonDecoder, FrameDecoder, FrameTableDecoder, ProtocolSession
from .transport import MockTransport, SerialTransport, Transport

__all__ = [
    "AdapterSession",
    "ButtonChange",
    "DeviceDescriptor",
    "DeviceHandle",
    "Edge",
    "RemovalNotice",
    "SteeringEvent",
    "ConnectionState",
    "ConnectionStatus",
    "ConnectionSupervisor",
    "BusMonitor",
    "Watchdog",
    "PortWatcher",
    "ProtocolSession",
    "FrameDecoder",
    "FrameTableDecoder",
    "BitmaskButtonDecoder",
    "Transport",
    "SerialTransport",
    "MockTransport",
    "Settings",
]
