"""
Heartbeat Domain Models

Pydantic V2 models for the heartbeat write endpoint plus the connection
state value reported by the appliance.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Connection states that close an open downtime window
RECOVERED_STATES = frozenset({"up", "online"})

# Payload fields stored in dedicated heartbeat columns
TELEMETRY_FIELDS = (
    "ipv4",
    "ipv6",
    "media_state",
    "connection_type",
    "bandwidth_down",
    "bandwidth_up",
    "rate_down",
    "rate_up",
    "bytes_down",
    "bytes_up",
)


@dataclass(frozen=True)
class ConnectionState:
    """Free-form connection state with a small recognised vocabulary.

    The sender's vocabulary is not controlled here, so any string is kept
    verbatim; only the recovered values carry meaning.
    """
    value: str

    @property
    def kind(self) -> str:
        return "recovered" if self.is_recovered else "other"

    @property
    def is_recovered(self) -> bool:
        return self.value.strip().lower() in RECOVERED_STATES

    def __str__(self) -> str:
        return self.value


def parse_heartbeat_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HeartbeatPayload(BaseModel):
    """Body of POST /heartbeat. Unknown fields are kept as metadata."""
    model_config = ConfigDict(extra="allow")

    connection_state: str = Field(..., description="Connection state reported by the appliance")
    timestamp: str = Field(..., description="ISO-8601 time the heartbeat was taken")
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    media_state: Optional[str] = None
    connection_type: Optional[str] = None
    bandwidth_down: Optional[int] = None
    bandwidth_up: Optional[int] = None
    rate_down: Optional[int] = None
    rate_up: Optional[int] = None
    bytes_down: Optional[int] = None
    bytes_up: Optional[int] = None

    @property
    def state(self) -> ConnectionState:
        return ConnectionState(self.connection_state)

    def parsed_timestamp(self) -> datetime:
        return parse_heartbeat_timestamp(self.timestamp)

    def telemetry(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in TELEMETRY_FIELDS}

    def extra_metadata(self) -> Optional[Dict[str, Any]]:
        """Unknown payload fields with null values dropped, None when empty."""
        extras = {key: value for key, value in (self.model_extra or {}).items() if value is not None}
        return extras or None


class HeartbeatRecordedResponse(BaseModel):
    """Response for an accepted heartbeat."""
    success: bool = Field(True, description="Always true for recorded heartbeats")
    message: str = Field("Heartbeat recorded", description="Human-readable status message")
    id: int = Field(..., description="Identifier of the stored heartbeat")


class ErrorResponse(BaseModel):
    """Uniform error body."""
    error: str = Field(..., description="HTTP reason phrase")
    message: str = Field(..., description="Human-readable error message")
