# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .startup_sequencer import (
    ConnectionStateHolder,
    InvalidStateTransition,
    RetryPolicy,
    StartupSequencer,
)
from .user_service import UserService

__all__ = [
    "ConnectionStateHolder",
    "InvalidStateTransition",
    "RetryPolicy",
    "StartupSequencer",
    "UserService",
]
