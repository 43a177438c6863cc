"""ELM327 AT command subset used by the handshake and the bus monitor."""
from __future__ import annotations

import re
from enum import Enum
from typing import Pattern, Tuple

PROMPT = b">"
COMMAND_TERMINATOR = b"\r"
LINE_TERMINATOR = b"\r"

# Leave ATMA streaming; the adapter treats any received byte as a stop request.
STOP_STREAMING = b"\r"

MONITOR_ALL = "ATMA"
DESCRIBE_PROTOCOL_NUMBER = "ATDPN"
AUTO_PROTOCOL_ID = "0"

# Replies the adapter uses for errors or bus conditions instead of data.
ERROR_REPLIES: Tuple[str, ...] = (
    "?",
    "ERROR",
    "UNABLE TO CONNECT",
    "CAN ERROR",
    "BUS ERROR",
    "BUS INIT: ...ERROR",
    "FB ERROR",
    "RX ERROR",
    "<DATA ERROR",
)

# Lines inside an ATMA stream that mean the adapter left monitoring mode.
STREAM_INTERRUPTIONS: Tuple[str, ...] = ("BUFFER FULL", "STOPPED", "<RX ERROR", "CAN ERROR")

# Informational lines carrying no frame data.
STREAM_NOISE: Tuple[str, ...] = ("NO DATA", "SEARCHING...", "OK")


class HandshakeStep(Enum):
    """Handshake steps in execution order.

    Each value is ``(command, expected reply pattern)``.
    """
    RESET = ("ATZ", r"ELM327")
    ECHO_OFF = ("ATE0", r"\bOK\b")
    LINEFEEDS_OFF = ("ATL0", r"\bOK\b")
    HEADERS_OFF = ("ATH0", r"\bOK\b")
    AUTO_PROTOCOL = ("ATSP" + AUTO_PROTOCOL_ID, r"\bOK\b")
    TEST_QUERY = ("0100", r"41\s*00")

    @property
    def command(self) -> str:
        return self.value[0]

    @property
    def expected(self) -> Pattern[str]:
        return re.compile(self.value[1], re.IGNORECASE)


def is_error_reply(reply: str) -> bool:
    """True if the reply text is an adapter error rather than data."""
    upper = reply.upper()
    return any(marker in upper for marker in ERROR_REPLIES)


def parse_version(reset_reply: str) -> str:
    """Extract the banner (e.g. ``ELM327 v1.5``) from an ATZ reply."""
    match = re.search(r"ELM327\s*v?[\w.]*", reset_reply, re.IGNORECASE)
    return match.group(0).strip() if match else reset_reply.strip()
