# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Users API:
# - test_models.py: Pydantic model and settings tests
# - test_connection_state.py: Connection state machine tests
# - test_startup_sequencer.py: Startup retry/sync tests (no real waiting)
# - test_database.py: Schema reconciliation against SQLite
# - test_user_service.py: CRUD service tests against SQLite
# - test_api.py: HTTP tests through FastAPI's TestClient
#
# Run tests with: pytest
# =============================================================================
