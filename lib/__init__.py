# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - database.py: SQLAlchemy wrapper (pool, schema reconciliation, sessions)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.database import Base, Database, UserRecord

__all__ = [
    "Base",
    "Database",
    "UserRecord",
]
