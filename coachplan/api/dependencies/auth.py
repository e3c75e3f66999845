"""FastAPI dependency resolving the caller to an Actor.

Token handling lives in the gateway in front of this service; by the time a
request arrives here its user id has been verified and is passed in the
``X-User-Id`` header. The role is never trusted from the caller: it is read
from the users table.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status
from loguru import logger

from coachplan.core.permissions import Actor
from coachplan.db.models import User
from coachplan.db.session import get_session

VALID_ROLES = {"coach", "client"}


def get_current_actor(
    request: Request,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> Actor:
    """Resolve the authenticated user id to an Actor with its stored role.

    Raises:
        HTTPException: 401 if the header is missing or the user is unknown
        HTTPException: 403 if the user has no coach/client role
    """
    if not x_user_id:
        logger.warning(f"Auth failed: missing X-User-Id header. Path: {request.url.path}, Method: {request.method}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    with get_session() as session:
        user = session.get(User, x_user_id)
        role = user.role if user is not None else None

    if role is None:
        logger.warning(f"Auth failed: User not found user_id={x_user_id}, Path: {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if role not in VALID_ROLES:
        logger.warning(f"Auth failed: user_id={x_user_id} has unsupported role '{role}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User has no coach or client role",
        )
    return Actor(user_id=x_user_id, role=role)  # type: ignore[arg-type]
