"""Transport layer for ELM327-class adapter communication."""

from .base import Transport
from .mock import MockTransport
from .serial import SerialTransport

__all__ = ["Transport", "SerialTransport", "MockTransport"]
