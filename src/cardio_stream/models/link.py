"""
Link State Models
=================

Connection lifecycle states of the sensor link and the state record the
link state machine reduces over.

Transitions:
    DISCONNECTED -> SCANNING -> CONNECTING -> CONNECTED
    any state -> RECONNECTING on link loss, which re-enters CONNECTING
    (known device) or SCANNING (no device known).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class DeviceCandidate:
    """
    A device reported by a scan.

    Attributes:
        name: Advertised name (may be empty)
        address: Transport address used to connect
        rssi: Signal strength at discovery, if known
    """

    name: str
    address: str
    rssi: Optional[int] = None

    def matches(self, keywords: Tuple[str, ...]) -> bool:
        """Case-insensitive name match against sensor keywords."""
        lowered = self.name.lower()
        return any(keyword.lower() in lowered for keyword in keywords)


class ConnectionState(str, Enum):
    """Sensor link states."""

    DISCONNECTED = "disconnected"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class LinkState(BaseModel):
    """
    Full state of the device link.

    Attributes:
        connection: Current connection state
        maintain_connection: Whether link loss triggers automatic recovery
        device: Device currently or last connected (target of direct reconnects)
        candidates: Matching devices reported by the current scan
        reconnect_attempts: Attempts since the last success or cap pause
        missed_heartbeats: Consecutive heartbeat checks without data
        last_data_at: Loop time of the most recent data
        disposed: Link has been disposed and ignores all events
    """

    connection: ConnectionState = Field(default=ConnectionState.DISCONNECTED)
    maintain_connection: bool = Field(default=False)
    device: Optional[DeviceCandidate] = Field(default=None)
    candidates: Tuple[DeviceCandidate, ...] = Field(default=())
    reconnect_attempts: int = Field(default=0, ge=0)
    missed_heartbeats: int = Field(default=0, ge=0)
    last_data_at: Optional[float] = Field(default=None)
    disposed: bool = Field(default=False)

    class Config:
        """Pydantic model configuration."""

        use_enum_values = False
