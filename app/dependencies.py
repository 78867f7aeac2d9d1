# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
# The objects themselves are created in the lifespan handler (app/main.py)
# and stored on app.state; tests can swap them via dependency_overrides.
# =============================================================================

from typing import Annotated

from fastapi import Depends, Request

from app.config import Settings
from core.services import ConnectionStateHolder, UserService


def get_app_settings(request: Request) -> Settings:
    """Get the settings the application was created with."""
    return request.app.state.settings


def get_connection_state(request: Request) -> ConnectionStateHolder:
    """Get the process-wide database connection state."""
    return request.app.state.connection_state


def get_user_service(request: Request) -> UserService:
    """Get the user service bound to the application's database."""
    return request.app.state.user_service


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
ConnectionStateDep = Annotated[ConnectionStateHolder, Depends(get_connection_state)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
