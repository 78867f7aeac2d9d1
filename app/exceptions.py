# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Every error carries a human-readable message plus a machine-readable code,
# and where possible a suggestion telling the caller HOW to fix it.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class UserServiceException(Exception):
    """
    Base exception for the users API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "USER_SERVICE_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "message": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Database Exceptions
# =============================================================================

class DatabaseConnectionError(UserServiceException):
    """Raised when the database cannot be reached or rejects the login."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Could not connect to database: {error}",
            code="DATABASE_CONNECTION_ERROR",
            status_code=500,
            suggestion="Check DB_HOST, DB_PORT, DB_USER, DB_PASSWORD and DB_NAME",
            details={"error": error},
        )


class SchemaError(UserServiceException):
    """Raised when the users table cannot be brought in line with the model."""

    def __init__(self, error: str, suggestion: str | None = None):
        super().__init__(
            message=f"Schema reconciliation failed: {error}",
            code="SCHEMA_ERROR",
            status_code=500,
            suggestion=suggestion,
            details={"error": error},
        )


class DatabaseUnavailableError(UserServiceException):
    """Raised when a data route is hit before the startup sync has finished."""

    def __init__(self, state: str):
        super().__init__(
            message="Database is not available",
            code="DATABASE_UNAVAILABLE",
            status_code=503,
            suggestion="Retry once GET /health/ready reports ready",
            details={"state": state},
        )


# =============================================================================
# User Exceptions
# =============================================================================

class UserNotFoundError(UserServiceException):
    """Raised when a user ID doesn't exist."""

    def __init__(self, user_id: int):
        super().__init__(
            message="User not found",
            code="USER_NOT_FOUND",
            status_code=404,
            suggestion="Check that the user id is correct",
            details={"user_id": user_id},
        )


class UserValidationError(UserServiceException):
    """Raised when a required user field is missing or blank."""

    def __init__(self, missing: list[str]):
        super().__init__(
            message=f"Missing required field(s): {', '.join(missing)}",
            code="VALIDATION_ERROR",
            status_code=400,
            suggestion="Send a JSON body with non-empty 'name' and 'email'",
            details={"missing": missing},
        )


class EmailConflictError(UserServiceException):
    """Raised when another user already owns the email address."""

    def __init__(self, email: str):
        super().__init__(
            message=f"Email already in use: {email}",
            code="EMAIL_CONFLICT",
            status_code=400,
            suggestion="Use a different email address",
            details={"email": email},
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def user_service_exception_handler(
    request: Request,
    exc: UserServiceException
) -> JSONResponse:
    """
    Convert UserServiceException to JSON response.

    Returns structured error with:
    - message: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request parsing errors (malformed JSON, bad path params).

    Reported as 400 like the other user input errors.
    """
    return JSONResponse(
        status_code=400,
        content={
            "message": "Invalid request",
            "code": "VALIDATION_ERROR",
            "errors": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
                for error in exc.errors()
            ],
        }
    )
