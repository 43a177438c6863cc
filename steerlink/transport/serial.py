"""Serial transport for ELM327-class USB adapters.

Raw bytes only. Command framing and prompt detection live in
ProtocolSession.
"""
from __future__ import annotations

import errno
import logging
from typing import Optional

import serial

from .base import Transport
from .adapter_finder import find_single_adapter, lookup_port
from ..errors import (
    NoDeviceError,
    PermissionDeniedError,
    TransportError,
    TransportIOError,
    TransportTimeout,
)
from ..models import DEFAULT_BAUDRATE, DeviceDescriptor, DeviceHandle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 0.2  # seconds

_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM, errno.EBUSY}


class SerialTransport(Transport):
    """Transport over a pyserial port.

    Opens 8N1 at the descriptor's baud rate. Per-call timeouts are applied
    to the underlying ``serial.Serial`` before each read or write.

    Example:
        >>> transport = SerialTransport()
        >>> handle = transport.open(DeviceDescriptor(port="/dev/ttyUSB0"))
        >>> transport.write(b"ATZ\\r", timeout=1.0)
        >>> transport.read(64, timeout=1.0)
        b'ELM327 v1.5\\r\\r>'
        >>> transport.close(handle)
    """

    def __init__(self):
        self._serial: Optional[serial.Serial] = None
        self._handle: Optional[DeviceHandle] = None

    @property
    def handle(self) -> Optional[DeviceHandle]:
        return self._handle

    def open(self, descriptor: DeviceDescriptor) -> DeviceHandle:
        if self._handle is not None:
            raise TransportError(f"Transport already open on {self._handle.port}")

        # Auto-detect adapter if port not specified
        if descriptor.port is None:
            info = find_single_adapter(
                expected_vid=descriptor.vendor_id,
                expected_pid=descriptor.product_id,
            )
            logger.info(f"Auto-detected adapter on {info.port}")
        else:
            info = lookup_port(descriptor.port)

        port = info.port if info else descriptor.port
        baudrate = descriptor.baudrate or DEFAULT_BAUDRATE

        try:
            ser = serial.Serial(
                port=port,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=DEFAULT_TIMEOUT,
                write_timeout=DEFAULT_TIMEOUT,
            )
            ser.reset_input_buffer()
            ser.reset_output_buffer()
        except serial.SerialException as e:
            if getattr(e, "errno", None) in _PERMISSION_ERRNOS:
                raise PermissionDeniedError(f"Cannot open {port}: {e}") from e
            raise NoDeviceError(f"Cannot open {port}: {e}") from e
        except OSError as e:
            raise NoDeviceError(f"Cannot open {port}: {e}") from e

        self._serial = ser
        self._handle = DeviceHandle(
            device_id=info.device_id if info else port,
            vendor_id=info.vid if info else None,
            product_id=info.pid if info else None,
            port=port,
        )
        logger.info(f"Opened adapter on {port} @ {baudrate} baud")
        return self._handle

    def close(self, handle: DeviceHandle) -> None:
        if self._handle is None or handle != self._handle:
            return

        ser = self._serial
        self._serial = None
        self._handle = None

        if ser is not None:
            try:
                ser.close()
            except (serial.SerialException, OSError) as e:
                # Device may already be gone
                logger.warning(f"Error closing {handle.port}: {e}")
        logger.info(f"Closed adapter on {handle.port}")

    def read(self, max_bytes: int, timeout: float) -> bytes:
        ser = self._require_open()
        try:
            if ser.timeout != timeout:
                ser.timeout = timeout
            # Return as soon as anything is there instead of waiting for max_bytes
            data = ser.read(max(1, min(ser.in_waiting, max_bytes)))
        except serial.SerialException as e:
            raise TransportIOError(f"Serial read error: {e}") from e
        except OSError as e:
            raise TransportIOError(f"Serial read error: {e}") from e

        if not data:
            raise TransportTimeout(f"No data within {timeout:.3f}s")
        return data

    def write(self, data: bytes, timeout: float) -> None:
        ser = self._require_open()
        try:
            ser.write_timeout = timeout
            ser.write(data)
            ser.flush()
        except serial.SerialTimeoutException as e:
            raise TransportTimeout(f"Write timeout: {e}") from e
        except serial.SerialException as e:
            raise TransportIOError(f"Serial write error: {e}") from e
        except OSError as e:
            raise TransportIOError(f"Serial write error: {e}") from e

    def flush_input(self) -> None:
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Error flushing input buffer: {e}") from e

    def _require_open(self) -> serial.Serial:
        if self._serial is None:
            raise TransportIOError("Serial port not open")
        return self._serial

    def __repr__(self) -> str:
        port = self._handle.port if self._handle else None
        status = "open" if self._handle else "closed"
        return f"SerialTransport(port={port}, status={status})"
