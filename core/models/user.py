# =============================================================================
# core/models/user.py - User Schemas
# =============================================================================
# These models define the API contract for user operations:
# - UserPayload: Input for POST /users and PUT /users/{id}
# - UserResponse: Output when returning a user to clients
#
# Timestamps are serialized as createdAt / updatedAt.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserPayload(BaseModel):
    """
    Body of create and update requests.

    Both fields are optional at the parsing level so that a missing field
    is reported by the service as a 400 with the list of missing names,
    rather than as a generic parse error.

    Example:
        {
            "name": "Ann",
            "email": "ann@x.com"
        }
    """

    name: str | None = Field(
        default=None,
        examples=["Ann"],
        description="Display name of the user"
    )

    email: str | None = Field(
        default=None,
        examples=["ann@x.com"],
        description="Email address, unique across all users"
    )


class UserResponse(BaseModel):
    """
    Schema for returning user data to clients.

    Returned by:
    - GET /users (list)
    - GET /users/{id}
    - POST /users, PUT /users/{id}

    Example:
        {
            "id": 1,
            "name": "Ann",
            "email": "ann@x.com",
            "createdAt": "2024-01-15T10:30:00",
            "updatedAt": "2024-01-15T10:30:00"
        }
    """

    # Allow creating from ORM objects (SQLAlchemy UserRecord rows)
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(
        ...,
        description="Auto-assigned sequential identifier"
    )

    name: str = Field(
        ...,
        description="Display name of the user"
    )

    email: str = Field(
        ...,
        description="Email address"
    )

    created_at: datetime | None = Field(
        default=None,
        serialization_alias="createdAt",
        description="When the user was created"
    )

    updated_at: datetime | None = Field(
        default=None,
        serialization_alias="updatedAt",
        description="When the user was last modified"
    )
