"""FastAPI dependency injection for authentication.

These dependencies are used in endpoint function signatures to inject
the authenticated user. The user repository lives on ``app.state``.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException, Request, status

from src.meeting_tracker.core.security import verify_token
from src.meeting_tracker.users.repository import UserRepository
from src.meeting_tracker.users.schemas import User


def _get_user_repository(request: Request) -> UserRepository:
    repository = getattr(request.app.state, "user_repository", None)
    if repository is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User service not initialized",
        )
    return repository


async def get_current_user(request: Request) -> User:
    """Extract and validate the current user from a Bearer JWT.

    Raises:
        HTTPException(401): Missing or invalid token, or unknown user.
        HTTPException(403): User account is deactivated.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(auth_header[7:], token_type="access")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token subject",
        )

    repository = _get_user_repository(request)
    user = await repository.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )
    return user
