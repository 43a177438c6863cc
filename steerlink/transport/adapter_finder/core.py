"""Serial port discovery for ELM327-class USB adapters."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Tuple

from serial.tools import list_ports

from .errors import AdapterNotFoundError, MultipleAdaptersError

logger = logging.getLogger(__name__)

# USB-serial bridge chips found in ELM327-class USB adapters (VID, PID).
KNOWN_BRIDGE_IDS: FrozenSet[Tuple[int, int]] = frozenset({
    (0x0403, 0x6001),  # FTDI FT232R
    (0x0403, 0x6015),  # FTDI FT231X
    (0x1A86, 0x7523),  # WCH CH340
    (0x067B, 0x2303),  # Prolific PL2303
    (0x10C4, 0xEA60),  # Silicon Labs CP210x
})

AdapterMatcher = Callable[["AdapterInfo"], bool]


@dataclass(frozen=True)
class AdapterInfo:
    """
    One serial port as listed by the host.

    Attributes:
        port: Path handed to pyserial ('/dev/ttyUSB0', 'COM4').
        vid: USB vendor id, None for non-USB ports.
        pid: USB product id, None for non-USB ports.
        product: USB product string reported by the bridge chip.
        hwid: pyserial's hardware id string, kept for log output.
    """
    port: str
    vid: Optional[int]
    pid: Optional[int]
    product: Optional[str] = None
    hwid: str = ""

    @property
    def device_id(self) -> str:
        """Identifier matched against removal notices: the port path."""
        return self.port

    @classmethod
    def from_list_port(cls, entry) -> AdapterInfo:
        """Build from a pyserial ListPortInfo."""
        return cls(
            port=entry.device,
            vid=entry.vid,
            pid=entry.pid,
            product=entry.product,
            hwid=entry.hwid or "",
        )


def _listed_ports() -> List[AdapterInfo]:
    return [AdapterInfo.from_list_port(entry) for entry in list_ports.comports()]


def is_matching_adapter(
    info: AdapterInfo,
    *,
    expected_vid: Optional[int] = None,
    expected_pid: Optional[int] = None,
    product_hint: Optional[str] = None,
) -> bool:
    """
    True if ``info`` looks like the adapter we want.

    Without explicit ids the port must belong to one of KNOWN_BRIDGE_IDS.
    ``product_hint`` is a case-insensitive substring of the product string.
    """
    if expected_vid is None and expected_pid is None:
        id_ok = (info.vid, info.pid) in KNOWN_BRIDGE_IDS
    else:
        id_ok = (
            (expected_vid is None or info.vid == expected_vid)
            and (expected_pid is None or info.pid == expected_pid)
        )
    if not id_ok:
        return False

    if product_hint is None:
        return True
    return bool(info.product) and product_hint.lower() in info.product.lower()


def lookup_port(port: str) -> Optional[AdapterInfo]:
    """Host listing for an explicit port path, or None if the host does not list it."""
    return next((info for info in _listed_ports() if info.port == port), None)


def list_port_ids() -> FrozenSet[str]:
    """Device ids of every serial port the host currently lists."""
    return frozenset(info.device_id for info in _listed_ports())


def find_adapters(
    *,
    matcher: Optional[AdapterMatcher] = None,
    expected_vid: Optional[int] = None,
    expected_pid: Optional[int] = None,
    product_hint: Optional[str] = None,
) -> List[AdapterInfo]:
    """All listed ports accepted by ``matcher`` (default: is_matching_adapter)."""
    if matcher is None:
        def matcher(info: AdapterInfo) -> bool:
            return is_matching_adapter(
                info,
                expected_vid=expected_vid,
                expected_pid=expected_pid,
                product_hint=product_hint,
            )

    found = [info for info in _listed_ports() if matcher(info)]
    logger.debug(f"Adapter scan found {[info.port for info in found]}")
    return found


def find_single_adapter(
    *,
    matcher: Optional[AdapterMatcher] = None,
    expected_vid: Optional[int] = None,
    expected_pid: Optional[int] = None,
    product_hint: Optional[str] = None,
) -> AdapterInfo:
    """
    The one matching adapter.

    Raises:
        AdapterNotFoundError: Nothing matched
        MultipleAdaptersError: More than one port matched; the caller has
            to name the port explicitly
    """
    found = find_adapters(
        matcher=matcher,
        expected_vid=expected_vid,
        expected_pid=expected_pid,
        product_hint=product_hint,
    )

    if not found:
        raise AdapterNotFoundError("No ELM327 adapter found on any serial port")
    if len(found) > 1:
        ports = ", ".join(info.port for info in found)
        logger.error(f"Several candidate adapters ({ports}), not choosing one")
        raise MultipleAdaptersError(f"{len(found)} candidate adapters: {ports}", adapters=found)
    return found[0]
