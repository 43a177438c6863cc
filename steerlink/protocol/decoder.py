"""Frame decoding strategies.

How steering buttons appear on the bus is vehicle specific, so the bus
monitor takes any FrameDecoder. Two table-driven implementations cover the
common layouts.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..errors import FrameDecodeError
from ..models import ButtonChange, Edge

_HEX_RE = re.compile(r"^[0-9A-F]+$")


def normalize_frame(frame: str) -> str:
    """Uppercase, whitespace-free form of a frame line."""
    return "".join(frame.split()).upper()


def frame_bytes(frame: str) -> bytes:
    """Parse a hex frame line (``"02 00 08"`` or ``"020008"``) into bytes.

    Raises:
        FrameDecodeError: Not an even-length hex string
    """
    text = normalize_frame(frame)
    if not text or len(text) % 2 or not _HEX_RE.match(text):
        raise FrameDecodeError(frame, "Not a hex frame")
    return bytes.fromhex(text)


class FrameDecoder(ABC):
    """Turns one bus frame into zero or more button changes."""

    @abstractmethod
    def decode(self, frame: str) -> List[ButtonChange]:
        """Decode one frame line.

        Raises:
            FrameDecodeError: Frame has the wrong length or an unknown identifier
        """
        pass

    def reset(self) -> None:
        """Forget any state carried between frames (new monitor run)."""
        pass


class FrameTableDecoder(FrameDecoder):
    """Looks frames up in a fixed table.

    Keys are compared in normalized form, so ``"3E9 00 08"`` and
    ``"3e90008"`` are the same entry.

    Example:
        >>> decoder = FrameTableDecoder({
        ...     "02 00 08": [ButtonChange(3, Edge.PRESSED)],
        ...     "02 00 00": [ButtonChange(3, Edge.RELEASED)],
        ... })
        >>> decoder.decode("020008")
        [ButtonChange(button_id=3, edge=<Edge.PRESSED: 'pressed'>)]
    """

    def __init__(self, table: Mapping[str, Iterable[ButtonChange]], ignore: Iterable[str] = ()):
        """Initialize decoder.

        Args:
            table: Frame text -> changes it represents
            ignore: Frames that are valid but carry no button change
        """
        self._table: Dict[str, List[ButtonChange]] = {
            normalize_frame(frame): list(changes) for frame, changes in table.items()
        }
        self._ignore: Set[str] = {normalize_frame(frame) for frame in ignore}

    def decode(self, frame: str) -> List[ButtonChange]:
        key = normalize_frame(frame)
        if key in self._table:
            return list(self._table[key])
        if key in self._ignore:
            return []
        raise FrameDecodeError(frame, "Unrecognized frame")


class BitmaskButtonDecoder(FrameDecoder):
    """Buttons as bits of one payload byte.

    Each frame carries the full set of held buttons. Bits that turn on are
    reported as PRESSED, bits that turn off as RELEASED, lowest bit first.

    Attributes:
        byte_index: Payload byte holding the bitmask
        bits: Bit number -> button id
        frame_length: Required payload length in bytes
        prefix: Leading payload bytes identifying the button frame, if any
    """

    def __init__(
        self,
        byte_index: int,
        bits: Mapping[int, int],
        frame_length: int,
        prefix: Optional[Sequence[int]] = None,
    ):
        if not 0 <= byte_index < frame_length:
            raise ValueError(f"byte_index {byte_index} outside frame of {frame_length} bytes")
        self.byte_index = byte_index
        self.bits = dict(bits)
        self.frame_length = frame_length
        self.prefix = bytes(prefix or b"")
        self._held = 0

    def decode(self, frame: str) -> List[ButtonChange]:
        data = frame_bytes(frame)
        if len(data) != self.frame_length:
            raise FrameDecodeError(frame, f"Expected {self.frame_length} bytes, got {len(data)}")
        if not data.startswith(self.prefix):
            raise FrameDecodeError(frame, "Unrecognized frame identifier")

        mask = 0
        for bit in self.bits:
            if data[self.byte_index] & (1 << bit):
                mask |= 1 << bit

        changed = mask ^ self._held
        self._held = mask

        changes: List[ButtonChange] = []
        for bit in sorted(self.bits):
            if changed & (1 << bit):
                edge = Edge.PRESSED if mask & (1 << bit) else Edge.RELEASED
                changes.append(ButtonChange(self.bits[bit], edge))
        return changes

    def reset(self) -> None:
        self._held = 0
