"""Adapter layer: connection supervision and bus monitoring.

This module provides:
- The connection state machine (ConnectionSupervisor) and its status model
- The continuous bus monitor (BusMonitor)
- The periodic reconciliation driver (Watchdog)
- Host detach detection for serial ports (PortWatcher)
"""

from .bus_monitor import BusMonitor, MonitorExit
from .port_watcher import PortWatcher
from .status import ConnectionState, ConnectionStatus
from .supervisor import ConnectionSupervisor
from .watchdog import Watchdog

__all__ = [
    # Supervision
    'ConnectionSupervisor',
    'ConnectionState',
    'ConnectionStatus',
    'Watchdog',

    # Monitoring
    'BusMonitor',
    'MonitorExit',

    # Host events
    'PortWatcher',
]
