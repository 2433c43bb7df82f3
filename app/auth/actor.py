"""
Actor Resolution
================

Identifies the caller of every API route. Authentication itself happens
upstream; requests arrive with the authenticated user's id in the
``X-User-Id`` header and the role / tenant come from the profile store.

Auth can only be bypassed when BOTH settings.debug and
settings.auth_enabled=false are set; the caller is then treated as a
super-admin.
"""

import logging
from typing import Callable, FrozenSet, Optional

from fastapi import Depends, Header
from pydantic import BaseModel

from app.config import settings
from app.core.errors import CoachbillError
from app.models.enums import UserRole

logger = logging.getLogger(__name__)

ADMIN_ROLES: FrozenSet[UserRole] = frozenset({UserRole.ADMIN, UserRole.SUPER_ADMIN})
BILLING_ROLES: FrozenSet[UserRole] = frozenset({UserRole.BILLING, UserRole.SUPER_ADMIN})

_DEV_ACTOR_ID = "dev-super-admin"


class Actor(BaseModel):
    """The authenticated caller."""

    user_id: str
    role: UserRole
    company_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_super_admin(self) -> bool:
        return self.role is UserRole.SUPER_ADMIN


def _is_auth_enabled() -> bool:
    if settings.auth_enabled:
        return True
    if settings.debug:
        logger.warning("AUTH DISABLED: auth_enabled=false with debug=True. Do NOT use this in production.")
        return False
    logger.warning("Ignoring auth_enabled=false because debug is off")
    return True


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


async def get_current_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Actor:
    """FastAPI dependency resolving the caller's profile."""
    from app.models.user import UserProfile

    if not x_user_id:
        if not _is_auth_enabled():
            return Actor(user_id=_DEV_ACTOR_ID, role=UserRole.SUPER_ADMIN)
        raise CoachbillError("CBL-AUTH-001", detail="missing X-User-Id header")

    with _get_db_session() as session:
        profile = session.get(UserProfile, x_user_id)
        if profile is None:
            raise CoachbillError("CBL-AUTH-001", detail=f"unknown user {x_user_id}")
        try:
            role = UserRole(profile.role)
        except ValueError:
            raise CoachbillError(
                "CBL-AUTH-002", detail=f"user {x_user_id} has unknown role {profile.role!r}",
            ) from None
        return Actor(user_id=profile.id, role=role, company_id=profile.company_id)


def require_roles(*roles: UserRole) -> Callable:
    """Dependency factory: reject callers whose role is not in *roles*.

    super-admin always passes.
    """
    allowed = frozenset(roles) | {UserRole.SUPER_ADMIN}

    async def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise CoachbillError(
                "CBL-AUTH-002",
                detail=f"role {actor.role.value} not in {sorted(r.value for r in allowed)}",
                context={"user_id": actor.user_id},
            )
        return actor

    return _dependency


def ensure_tenant_access(actor: Actor, tenant_id: str) -> None:
    """Raise unless *actor* belongs to *tenant_id* (super-admins see every tenant)."""
    if actor.is_super_admin:
        return
    if actor.company_id != tenant_id:
        raise CoachbillError(
            "CBL-AUTH-003",
            detail=f"user {actor.user_id} ({actor.company_id}) accessed tenant {tenant_id}",
            context={"user_id": actor.user_id, "tenant_id": tenant_id},
        )
