# =============================================================================
# core/services/startup_sequencer.py - Database Startup Synchronization
# =============================================================================
# Brings the data layer up when the process starts:
#
#   disconnected -> syncing -> ready
#   disconnected -> syncing -> disconnected   (wait, then try again)
#   disconnected -> failed                    (attempt ceiling reached)
#
# Each attempt runs connect() AND reconcile_schema(); a failure in either
# counts as a failed attempt and the next attempt starts again from connect().
# Reaching the ceiling is logged and leaves the process running with data
# routes answering 503; it never raises.
#
# Usage:
#   state = ConnectionStateHolder()
#   sequencer = StartupSequencer(database, state, RetryPolicy(max_attempts=10))
#   await sequencer.run()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Protocol

from core.models.connection import ConnectionState, ConnectionStatus

if TYPE_CHECKING:
    from app.config import Settings

logger = logging.getLogger(__name__)


class SupportsSync(Protocol):
    """The part of the data layer the sequencer drives."""

    def connect(self) -> None: ...

    def reconcile_schema(self) -> None: ...

    def dispose(self) -> None: ...


class InvalidStateTransition(Exception):
    """Raised when a connection state change is not part of the lifecycle."""

    def __init__(self, current: ConnectionState, target: ConnectionState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.SYNCING, ConnectionState.FAILED}),
    ConnectionState.SYNCING: frozenset({ConnectionState.READY, ConnectionState.DISCONNECTED}),
    ConnectionState.READY: frozenset(),
    ConnectionState.FAILED: frozenset(),
}


class ConnectionStateHolder:
    """
    Process-wide connection state.

    One instance lives on the FastAPI app (app.state.connection_state) and is
    handed to route handlers through dependencies. Only the sequencer moves
    it; everything else reads.
    """

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._last_error: str | None = None
        self._changed_at = datetime.now(timezone.utc)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def is_terminal(self) -> bool:
        return not _ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: ConnectionState) -> None:
        """
        Move to `target`.

        Raises:
            InvalidStateTransition: If the lifecycle does not allow it.
        """
        if target not in _ALLOWED_TRANSITIONS[self._state]:
            raise InvalidStateTransition(self._state, target)
        logger.debug(f"Connection state: {self._state.value} -> {target.value}")
        self._state = target
        self._changed_at = datetime.now(timezone.utc)

    def record_failure(self, error: BaseException) -> int:
        """Count a failed attempt. Returns the new attempt total."""
        self._attempts += 1
        self._last_error = str(error)
        return self._attempts

    def snapshot(self) -> ConnectionStatus:
        return ConnectionStatus(
            state=self._state,
            attempts=self._attempts,
            last_error=self._last_error,
            changed_at=self._changed_at,
        )


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval retry.

    max_attempts=None retries forever; otherwise the sequencer stops after
    that many failed attempts (with max_attempts - 1 waits in between).
    """

    max_attempts: int | None = 10
    delay_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None for unbounded retry")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_attempts=settings.sync_max_attempts,
            delay_seconds=settings.DB_SYNC_RETRY_DELAY_SECONDS,
        )

    @property
    def is_bounded(self) -> bool:
        return self.max_attempts is not None

    def is_exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class StartupSequencer:
    """
    Drives the data layer from disconnected to ready (or failed).

    The blocking connect/reconcile calls run in a worker thread and the wait
    between attempts is an asyncio sleep, so the event loop keeps serving
    requests and handling signals while the database comes up.

    Args:
        database: Object with connect(), reconcile_schema() and dispose()
        state: Shared state holder the sequencer moves through the lifecycle
        policy: Attempt ceiling and fixed delay
        sleep: Awaitable sleep, replaced in tests to skip real waiting
    """

    def __init__(
        self,
        database: SupportsSync,
        state: ConnectionStateHolder,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self._database = database
        self._state = state
        self._policy = policy
        self._sleep = sleep

    def _synchronize(self) -> None:
        self._database.connect()
        self._database.reconcile_schema()

    async def _abandon(self, attempt: asyncio.Future) -> None:
        """
        Let an interrupted attempt finish, then release whatever it opened.

        A worker thread cannot be stopped, so disposing before it returns
        would let it install a fresh engine after shutdown.
        """
        logger.info("Database sync cancelled, waiting for the attempt in flight")
        try:
            await attempt
        except Exception as e:
            logger.debug(f"Interrupted attempt ended with: {e}")
        self._database.dispose()
        self._state.transition(ConnectionState.DISCONNECTED)

    async def run(self) -> ConnectionState:
        """
        Attempt connect + schema sync until ready or out of attempts.

        Returns the final state (READY or FAILED). Calling run() again after
        that is a no-op. Cancellation (application shutdown) propagates once
        any attempt in flight has returned and the pool is released; the state
        is left at DISCONNECTED.
        """
        if self._state.is_terminal:
            logger.info(f"Database sync already finished ({self._state.state.value})")
            return self._state.state

        while True:
            self._state.transition(ConnectionState.SYNCING)
            attempt = asyncio.ensure_future(asyncio.to_thread(self._synchronize))
            try:
                await asyncio.shield(attempt)
            except asyncio.CancelledError:
                await self._abandon(attempt)
                raise
            except Exception as e:
                attempts = self._state.record_failure(e)
                self._database.dispose()
                self._state.transition(ConnectionState.DISCONNECTED)

                if self._policy.is_exhausted(attempts):
                    logger.error(
                        f"Could not connect to database after {attempts} attempts: {e}. "
                        "Continuing without a usable data layer."
                    )
                    self._state.transition(ConnectionState.FAILED)
                    return self._state.state

                limit = self._policy.max_attempts if self._policy.is_bounded else "unbounded"
                logger.warning(
                    f"Attempt {attempts}/{limit}: database not ready yet ({e}). "
                    f"Retrying in {self._policy.delay_seconds:g}s..."
                )
                await self._sleep(self._policy.delay_seconds)
                continue

            self._state.transition(ConnectionState.READY)
            logger.info(
                f"Database & tables synced successfully "
                f"(after {self._state.attempts + 1} attempt(s))"
            )
            return self._state.state
