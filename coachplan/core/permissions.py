"""Permission guards for coach-client access control.

The caller is always passed explicitly as an ``Actor``; there is no ambient
"current user". No implicit permissions - all access must be explicitly granted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from coachplan.core.errors import NotAuthorizedError
from coachplan.db.models import CoachClient

Role = Literal["coach", "client", "system"]


@dataclass(frozen=True)
class Actor:
    """Resolved caller identity.

    ``system`` is used by externally triggered sweeps (CLI, scheduler).
    """

    user_id: str
    role: Role

    @property
    def is_coach(self) -> bool:
        return self.role == "coach"

    @property
    def is_client(self) -> bool:
        return self.role == "client"

    @property
    def is_system(self) -> bool:
        return self.role == "system"


SYSTEM_ACTOR = Actor(user_id="system", role="system")


def require_role(actor: Actor, role: Role, action: str) -> None:
    """Require the actor to hold ``role``.

    Raises:
        NotAuthorizedError: If the actor has a different role
    """
    if actor.role != role:
        raise NotAuthorizedError(
            f"Only a {role} can {action}",
            user_id=actor.user_id,
            required_role=role,
        )


def require_coach_access(session: Session, coach_id: str, client_id: str) -> CoachClient:
    """Require that a coach has an active relationship with a client.

    Raises:
        NotAuthorizedError: If no active relationship exists
    """
    link = session.execute(
        select(CoachClient).where(
            CoachClient.coach_id == coach_id,
            CoachClient.client_id == client_id,
            CoachClient.is_active.is_(True),
        )
    ).scalar_one_or_none()

    if link is None:
        raise NotAuthorizedError(
            "Coach is not assigned to this client",
            user_id=coach_id,
            required_role="coach",
        )
    return link
