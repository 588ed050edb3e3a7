from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    QR_READY = "QR_READY"
    AUTHENTICATED = "AUTHENTICATED"
    CONNECTED = "CONNECTED"


@dataclass(frozen=True)
class StatusSnapshot:
    state: SessionState
    qr: str | None = None  # only set while state is QR_READY
    detail: str | None = None  # last error or disconnect reason
