"""Data models shared by the scanner, poller and uploaders."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .config import DestinationConfig


class PollerStatus(str, Enum):
    """Runtime status of a poller instance."""

    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class FetchedMessage:
    """Raw RFC 822 message fetched from IMAP."""

    uid: str
    raw_bytes: bytes


@dataclass(frozen=True)
class DestinationInfo:
    """Where an attachment should be delivered."""

    config: DestinationConfig
    directory: str


@dataclass
class Attachment:
    """A file extracted from a message, ready for delivery.

    ``content`` is already transfer-decoded.
    """

    filename: str
    content: bytes
    destination: DestinationInfo


class HealthStatus(BaseModel):
    """Response model for the /health probe endpoint."""

    source_name: str = Field(description="Source the poller scans")
    status: PollerStatus = Field(description="Current poller status")
    uptime_seconds: float = Field(description="Seconds since the poller was created")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Poller details (last poll time, cycles, last error)",
    )
