"""Broker-neutral message carriers and connection states."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

RETRY_HEADER = "x-retry-count"


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    READY = "ready"  # publisher and worker channels open
    CLOSED = "closed"  # stopped, no further reconnects


@dataclass(frozen=True)
class OutgoingMessage:
    exchange: str
    routing_key: str
    body: bytes
    headers: dict[str, Any] = field(default_factory=dict)


@dataclass
class Delivery:
    """A message handed to a consumer. Metadata drives ack/requeue decisions only."""

    body: bytes
    headers: dict[str, Any] = field(default_factory=dict)
    redelivered: bool = False
    consumer_tag: str | None = None
    delivery_tag: int | None = None
    raw: Any = None  # broker-native message, needed to settle it

    @property
    def retry_count(self) -> int:
        try:
            return int(self.headers.get(RETRY_HEADER, 0))
        except (TypeError, ValueError):
            return 0
