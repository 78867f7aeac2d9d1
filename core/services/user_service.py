# =============================================================================
# core/services/user_service.py - User Business Logic
# =============================================================================
# Handles user CRUD operations and business logic.
# Separates HTTP concerns from database logic.
# =============================================================================

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.exceptions import (
    DatabaseUnavailableError,
    EmailConflictError,
    UserNotFoundError,
    UserValidationError,
)
from core.models.user import UserResponse
from core.services.startup_sequencer import ConnectionStateHolder
from lib.database import Database, UserRecord

logger = logging.getLogger(__name__)


def _require_fields(name: str | None, email: str | None) -> tuple[str, str]:
    missing = [
        field for field, value in (("name", name), ("email", email))
        if value is None or not value.strip()
    ]
    if missing:
        raise UserValidationError(missing)
    return name.strip(), email.strip()


class UserService:
    """
    Service for user management operations.

    Provides a clean interface between API routes and the database.
    Every call is refused with DatabaseUnavailableError until the startup
    sync has reached the ready state.
    """

    def __init__(self, database: Database, state: ConnectionStateHolder):
        self._database = database
        self._state = state

    def _ensure_ready(self) -> None:
        if not self._state.is_ready:
            raise DatabaseUnavailableError(self._state.state.value)

    def find_all(self) -> list[UserResponse]:
        """Return every user ordered by id."""
        self._ensure_ready()
        with self._database.session() as session:
            records = session.scalars(select(UserRecord).order_by(UserRecord.id)).all()
            return [UserResponse.model_validate(record) for record in records]

    def find_by_id(self, user_id: int) -> UserResponse:
        """
        Get a user by ID.

        Raises:
            UserNotFoundError: If no user has this id
        """
        self._ensure_ready()
        with self._database.session() as session:
            record = session.get(UserRecord, user_id)
            if record is None:
                raise UserNotFoundError(user_id)
            return UserResponse.model_validate(record)

    def create(self, name: str | None, email: str | None) -> UserResponse:
        """
        Create a new user.

        Args:
            name: Display name (required)
            email: Email address (required, unique)

        Returns:
            The created user with its assigned id

        Raises:
            UserValidationError: If name or email is missing/blank
            EmailConflictError: If the email is already taken
        """
        self._ensure_ready()
        name, email = _require_fields(name, email)

        try:
            with self._database.session() as session:
                record = UserRecord(name=name, email=email)
                session.add(record)
                session.flush()
                user = UserResponse.model_validate(record)
        except IntegrityError as e:
            logger.info(f"Rejected duplicate email on create: {email}")
            raise EmailConflictError(email) from e

        logger.info(f"Created user: {user.id}")
        return user

    def update(self, user_id: int, name: str | None, email: str | None) -> UserResponse:
        """
        Replace name and email of an existing user.

        Raises:
            UserNotFoundError: If no user has this id (nothing is created)
            UserValidationError: If name or email is missing/blank
            EmailConflictError: If another user has the email
        """
        self._ensure_ready()
        name, email = _require_fields(name, email)

        try:
            with self._database.session() as session:
                record = session.get(UserRecord, user_id)
                if record is None:
                    raise UserNotFoundError(user_id)
                record.name = name
                record.email = email
                session.flush()
                user = UserResponse.model_validate(record)
        except IntegrityError as e:
            raise EmailConflictError(email) from e

        logger.info(f"Updated user: {user_id}")
        return user

    def delete(self, user_id: int) -> None:
        """
        Delete a user.

        Raises:
            UserNotFoundError: If no user has this id
        """
        self._ensure_ready()
        with self._database.session() as session:
            record = session.get(UserRecord, user_id)
            if record is None:
                raise UserNotFoundError(user_id)
            session.delete(record)

        logger.info(f"Deleted user: {user_id}")
