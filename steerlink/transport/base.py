"""Abstract base class for the transport layer.

The Transport interface is a byte pipe to an ELM327-class adapter. It knows
nothing about AT commands or prompts; that belongs to ProtocolSession.

Key principles:
- Every read and write is bounded by an explicit timeout
- No retries; failures propagate verbatim as TransportError subclasses
- At most one open handle per transport
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import DeviceDescriptor, DeviceHandle


class Transport(ABC):
    """Abstract byte transport to an adapter.

    Transports are responsible for:
    1. Acquiring and releasing the device
    2. Moving raw bytes with bounded timeouts

    They must never block indefinitely, so that a monitoring loop built on
    top of them can always be cancelled within one read.
    """

    @abstractmethod
    def open(self, descriptor: DeviceDescriptor) -> DeviceHandle:
        """Open the adapter described by ``descriptor``.

        Returns:
            Handle identifying the opened device

        Raises:
            NoDeviceError: Adapter missing or not recognized
            PermissionDeniedError: Adapter busy or access refused
            TransportError: A handle is already open on this transport
        """
        pass

    @abstractmethod
    def close(self, handle: DeviceHandle) -> None:
        """Release ``handle``.

        Safe to call multiple times. Closing a handle that is not the
        currently open one is a no-op.
        """
        pass

    @abstractmethod
    def read(self, max_bytes: int, timeout: float) -> bytes:
        """Read up to ``max_bytes``.

        Returns:
            At least one byte

        Raises:
            TransportTimeout: Nothing arrived within ``timeout`` seconds
            TransportIOError: The link failed
        """
        pass

    @abstractmethod
    def write(self, data: bytes, timeout: float) -> None:
        """Write all of ``data``.

        Raises:
            TransportTimeout: The write did not complete within ``timeout``
            TransportIOError: The link failed
        """
        pass

    @abstractmethod
    def flush_input(self) -> None:
        """Discard anything received but not yet read."""
        pass

    @property
    @abstractmethod
    def handle(self) -> Optional[DeviceHandle]:
        """Currently open handle, or None."""
        pass

    @property
    def is_open(self) -> bool:
        """True while a handle is open."""
        return self.handle is not None
