# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - user.py: User request/response schemas
# - connection.py: Database connection state and status snapshot
#
# These models define the "contract" between API and clients.
# =============================================================================

from .connection import ConnectionState, ConnectionStatus
from .user import UserPayload, UserResponse

__all__ = [
    "ConnectionState",
    "ConnectionStatus",
    "UserPayload",
    "UserResponse",
]
