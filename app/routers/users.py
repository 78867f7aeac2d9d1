# =============================================================================
# app/routers/users.py - User CRUD Endpoints
# =============================================================================
# Single-row lookups, inserts, updates and deletes on the users table.
# Errors raised by UserService are rendered by the handlers in app/exceptions.
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Path, Response, status

from app.dependencies import UserServiceDep
from core.models.user import UserPayload, UserResponse

router = APIRouter()

UserId = Annotated[int, Path(description="User id")]


@router.get("", response_model=list[UserResponse])
def list_users(service: UserServiceDep):
    """
    List all users.

    Returns every user ordered by id.
    """
    return service.find_all()


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: UserId, service: UserServiceDep):
    """
    Get a single user.

    Returns 404 with `{"message": "User not found"}` if the id is unknown.
    """
    return service.find_by_id(user_id)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserPayload, service: UserServiceDep):
    """
    Create a user.

    Both `name` and `email` are required; the email must not belong to
    another user. Either problem is reported as 400.
    """
    return service.create(payload.name, payload.email)


@router.put("/{user_id}", response_model=UserResponse)
def update_user(user_id: UserId, payload: UserPayload, service: UserServiceDep):
    """
    Replace a user's name and email.

    Returns 404 if the id is unknown; no user is created in that case.
    """
    return service.update(user_id, payload.name, payload.email)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def delete_user(user_id: UserId, service: UserServiceDep):
    """Delete a user. Returns 404 if the id is unknown."""
    service.delete(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
