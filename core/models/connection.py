# =============================================================================
# core/models/connection.py - Database Connection State Schemas
# =============================================================================
# The process-wide connection state driven by the startup sequencer,
# and the snapshot of it reported by GET /health/ready.
# =============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """
    Lifecycle of the database connection.

    State machine:
        disconnected -> syncing -> ready
                  ^          |
                  +----------+   (attempt failed, retry)
        disconnected -> failed   (attempt ceiling reached)

    - disconnected: No usable connection (initial state, or between retries)
    - syncing: Connecting and reconciling the schema
    - ready: Data routes can be served
    - failed: Gave up retrying; the process keeps running degraded
    """
    DISCONNECTED = "disconnected"
    SYNCING = "syncing"
    READY = "ready"
    FAILED = "failed"


class ConnectionStatus(BaseModel):
    """Point-in-time view of the connection state."""

    state: ConnectionState = Field(
        ...,
        description="Current connection state"
    )

    attempts: int = Field(
        default=0,
        ge=0,
        description="Failed sync attempts so far"
    )

    last_error: str | None = Field(
        default=None,
        description="Message of the most recent failed attempt"
    )

    changed_at: datetime = Field(
        ...,
        description="When the state last changed"
    )
