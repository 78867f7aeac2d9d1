# =============================================================================
# tests/test_startup_sequencer.py - Startup Sequencer Tests
# =============================================================================
# Tests for the connect + schema sync retry loop.
#
# The data layer is a FakeDatabase and the sleep only records delays,
# so no test waits for real time to pass.
# =============================================================================

import asyncio

import pytest

from core.models.connection import ConnectionState
from core.services import ConnectionStateHolder, RetryPolicy, StartupSequencer


class TracingStateHolder(ConnectionStateHolder):
    """State holder that remembers every state it passed through."""

    def __init__(self):
        super().__init__()
        self.history = [self.state]

    def transition(self, target):
        super().transition(target)
        self.history.append(target)


def run_sequencer(database, sleep, policy):
    state = TracingStateHolder()
    sequencer = StartupSequencer(database, state, policy, sleep=sleep)
    result = asyncio.run(sequencer.run())
    return result, state, sequencer


# =============================================================================
# Success Path
# =============================================================================

class TestSuccess:
    """Database available (eventually)."""

    def test_first_attempt(self, fake_database, recording_sleep):
        """No failures: ready without waiting."""
        db = fake_database()

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy())

        assert result == ConnectionState.READY
        assert state.is_ready
        assert state.attempts == 0
        assert db.calls == ["connect", "reconcile"]
        assert recording_sleep.delays == []
        assert state.history == [
            ConnectionState.DISCONNECTED,
            ConnectionState.SYNCING,
            ConnectionState.READY,
        ]

    def test_ready_after_some_failures(self, fake_database, recording_sleep):
        """Fails twice, succeeds on the third attempt."""
        db = fake_database(connect_failures=2)

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=10))

        assert result == ConnectionState.READY
        assert state.attempts == 2
        assert db.count("connect") == 3
        assert recording_sleep.delays == [5.0, 5.0]
        assert state.history == [
            ConnectionState.DISCONNECTED,
            ConnectionState.SYNCING,
            ConnectionState.DISCONNECTED,
            ConnectionState.SYNCING,
            ConnectionState.DISCONNECTED,
            ConnectionState.SYNCING,
            ConnectionState.READY,
        ]

    def test_success_on_last_allowed_attempt(self, fake_database, recording_sleep):
        """Succeeding on attempt N of N is still a success."""
        db = fake_database(connect_failures=4)

        result, _, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=5))

        assert result == ConnectionState.READY
        assert db.count("connect") == 5


# =============================================================================
# Bounded Retry
# =============================================================================

class TestBoundedRetry:
    """Permanent failure with an attempt ceiling."""

    @pytest.mark.parametrize("max_attempts", [1, 2, 10, 15])
    def test_exactly_n_attempts_then_failed(self, fake_database, recording_sleep, max_attempts):
        """N attempts, N-1 delays, then failed."""
        db = fake_database(connect_failures=None)

        result, state, _ = run_sequencer(
            db, recording_sleep, RetryPolicy(max_attempts=max_attempts, delay_seconds=5)
        )

        assert result == ConnectionState.FAILED
        assert state.state == ConnectionState.FAILED
        assert state.attempts == max_attempts
        assert db.count("connect") == max_attempts
        assert db.count("reconcile") == 0
        assert recording_sleep.delays == [5] * (max_attempts - 1)
        assert state.history[-2:] == [ConnectionState.DISCONNECTED, ConnectionState.FAILED]

    def test_no_attempts_after_failed(self, fake_database, recording_sleep):
        """Running again after giving up does nothing."""
        db = fake_database(connect_failures=None)
        state = ConnectionStateHolder()
        sequencer = StartupSequencer(db, state, RetryPolicy(max_attempts=3), sleep=recording_sleep)

        asyncio.run(sequencer.run())
        result = asyncio.run(sequencer.run())

        assert result == ConnectionState.FAILED
        assert db.count("connect") == 3
        assert len(recording_sleep.delays) == 2

    def test_exhaustion_does_not_raise(self, fake_database, recording_sleep):
        """Giving up is reported through state, not an exception."""
        db = fake_database(connect_failures=None, connect_error=RuntimeError("unexpected"))

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=2))

        assert result == ConnectionState.FAILED
        assert state.last_error == "unexpected"

    def test_custom_delay(self, fake_database, recording_sleep):
        """The configured delay is used between every attempt."""
        db = fake_database(connect_failures=None)

        run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=4, delay_seconds=0.25))

        assert recording_sleep.delays == [0.25, 0.25, 0.25]


# =============================================================================
# Unbounded Retry
# =============================================================================

class TestUnboundedRetry:
    """max_attempts=None keeps trying."""

    def test_never_fails(self, fake_database, recording_sleep):
        """Many failures, never the failed state, eventually ready."""
        db = fake_database(connect_failures=50)

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=None))

        assert result == ConnectionState.READY
        assert ConnectionState.FAILED not in state.history
        assert state.attempts == 50
        assert len(recording_sleep.delays) == 50


# =============================================================================
# Partial Success
# =============================================================================

class TestPartialSuccess:
    """Connect works but the schema sync does not."""

    def test_reconcile_failure_retries_connect(self, fake_database, recording_sleep):
        """The whole sequence is retried, starting with connect."""
        db = fake_database(reconcile_failures=1)

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy())

        assert result == ConnectionState.READY
        assert state.attempts == 1
        assert db.calls == ["connect", "reconcile", "dispose", "connect", "reconcile"]

    def test_reconcile_failures_count_toward_limit(self, fake_database, recording_sleep):
        """Schema errors use up attempts like connection errors."""
        db = fake_database(reconcile_failures=None)

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=3))

        assert result == ConnectionState.FAILED
        assert db.count("connect") == 3
        assert db.count("reconcile") == 3
        assert db.count("dispose") == 3
        assert "lock wait timeout" in state.last_error

    def test_attempt_counter_is_cumulative(self, fake_database, recording_sleep):
        """Mixed connect and schema failures share one counter."""
        db = fake_database(connect_failures=2, reconcile_failures=2)

        result, state, _ = run_sequencer(db, recording_sleep, RetryPolicy(max_attempts=4))

        assert result == ConnectionState.FAILED
        assert state.attempts == 4


# =============================================================================
# Cooperative Waiting
# =============================================================================

class TestCooperativeWait:
    """The wait between attempts yields to other tasks."""

    def test_other_tasks_run_during_wait(self, fake_database):
        """A concurrent task makes progress while the sequencer waits."""
        db = fake_database(connect_failures=2)
        ticks = []

        async def scenario():
            state = ConnectionStateHolder()
            sequencer = StartupSequencer(
                db, state, RetryPolicy(max_attempts=5, delay_seconds=0.01)
            )

            async def ticker():
                while not state.is_terminal:
                    ticks.append(state.state)
                    await asyncio.sleep(0.001)

            result, _ = await asyncio.gather(sequencer.run(), ticker())
            return result

        assert asyncio.run(scenario()) == ConnectionState.READY
        assert ticks

    def test_cancel_during_wait(self, fake_database):
        """Cancelling the task stops the retry loop."""
        db = fake_database(connect_failures=None)

        async def scenario():
            state = ConnectionStateHolder()
            sequencer = StartupSequencer(
                db, state, RetryPolicy(max_attempts=None, delay_seconds=3600)
            )
            task = asyncio.create_task(sequencer.run())
            while state.attempts == 0:
                await asyncio.sleep(0.001)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return state

        state = asyncio.run(scenario())

        assert state.state == ConnectionState.DISCONNECTED
        assert db.count("connect") == 1


# =============================================================================
# Cancellation During an Attempt
# =============================================================================

class TestCancelDuringAttempt:
    """Shutdown while connect() is still running in the worker thread."""

    def test_waits_for_attempt_then_disposes(self, gated_database):
        """The pool opened by the late attempt is released and the state settles."""
        db = gated_database

        async def scenario():
            state = ConnectionStateHolder()
            sequencer = StartupSequencer(
                db, state, RetryPolicy(max_attempts=None, delay_seconds=0)
            )
            task = asyncio.create_task(sequencer.run())
            while not db.entered.is_set():
                await asyncio.sleep(0.001)

            task.cancel()
            await asyncio.sleep(0.05)
            assert not task.done()

            db.gate.set()
            with pytest.raises(asyncio.CancelledError):
                await task
            return state

        state = asyncio.run(scenario())

        assert not db.is_connected
        assert state.state == ConnectionState.DISCONNECTED
        assert state.attempts == 0

    def test_failed_attempt_in_flight(self, gated_database):
        """An attempt that fails after the cancel is not retried."""
        db = gated_database
        db.failures = 1

        async def scenario():
            state = ConnectionStateHolder()
            sequencer = StartupSequencer(
                db, state, RetryPolicy(max_attempts=None, delay_seconds=0)
            )
            task = asyncio.create_task(sequencer.run())
            while not db.entered.is_set():
                await asyncio.sleep(0.001)
            task.cancel()
            db.gate.set()
            with pytest.raises(asyncio.CancelledError):
                await task
            return state

        state = asyncio.run(scenario())

        assert db.failures == 0
        assert not db.is_connected
        assert state.state == ConnectionState.DISCONNECTED
