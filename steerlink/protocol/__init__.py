"""ELM327 command protocol and bus frame decoding."""

from .commands import HandshakeStep
from .decoder import BitmaskButtonDecoder, FrameDecoder, FrameTableDecoder
from .session import ProtocolSession

__all__ = [
    "HandshakeStep",
    "ProtocolSession",
    "FrameDecoder",
    "FrameTableDecoder",
    "BitmaskButtonDecoder",
]
