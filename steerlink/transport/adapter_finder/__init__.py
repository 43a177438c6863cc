from .core import (
    KNOWN_BRIDGE_IDS,
    AdapterInfo,
    find_adapters,
    find_single_adapter,
    is_matching_adapter,
    lookup_port,
    list_port_ids,
)
from .errors import AdapterNotFoundError, MultipleAdaptersError

__all__ = [
    "KNOWN_BRIDGE_IDS",
    "AdapterInfo",
    "find_adapters",
    "find_single_adapter",
    "is_matching_adapter",
    "lookup_port",
    "list_port_ids",
    "AdapterNotFoundError",
    "MultipleAdaptersError",
]
