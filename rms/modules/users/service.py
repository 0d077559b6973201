"""Actor resolution: primary role, branch memberships, and branch scoping."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, false, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rms.models.enums import RmsRole
from rms.models.rma import Rma
from rms.models.user import User

logger = logging.getLogger(__name__)

# Lowest priority first; the last role a user holds wins.
ROLE_PRIORITY: list[RmsRole] = [
    RmsRole.CUSTOMER,
    RmsRole.WAREHOUSE,
    RmsRole.QC,
    RmsRole.FINANCE,
    RmsRole.RETURNS_AGENT,
    RmsRole.BRANCH_MANAGER,
    RmsRole.ADMIN,
]


@dataclass
class ActorContext:
    """The resolved RMS identity every lifecycle operation acts on behalf of."""

    id: uuid.UUID
    role: RmsRole
    branch_ids: list[str] = field(default_factory=list)
    is_admin: bool = False
    portal_user_id: str | None = None
    email: str | None = None
    # Client address of the current request, copied onto audit rows
    ip_address: str | None = None


def resolve_primary_role(roles: list[RmsRole]) -> RmsRole:
    """Pick the highest-priority role from a user's branch assignments."""
    if not roles:
        raise ValueError("Cannot resolve a primary role from an empty role list")
    return max(roles, key=ROLE_PRIORITY.index)


def branch_scope_where(
    actor: ActorContext, branch_id: str | None = None
) -> list[ColumnElement[bool]]:
    """Build the WHERE criteria restricting RMA reads to the actor's branches.

    Admins see every branch unless they pass an explicit ``branch_id``.
    Non-admins asking for a branch outside their assignments match nothing.
    """
    if actor.is_admin:
        return [Rma.branch_id == branch_id] if branch_id else []
    if branch_id is not None:
        if branch_id not in actor.branch_ids:
            return [false()]
        return [Rma.branch_id == branch_id]
    return [Rma.branch_id.in_(actor.branch_ids)]


class UsersService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_portal_id(self, portal_user_id: str) -> ActorContext | None:
        """Resolve a portal identity to an ActorContext.

        Returns None when the user is unknown or has no branch role
        assignments; the auth dependency turns that into a 403.
        """
        result = await self.db.execute(
            select(User)
            .options(selectinload(User.branch_roles))
            .where(User.portal_user_id == portal_user_id)
        )
        user = result.scalar_one_or_none()
        if user is None or not user.branch_roles:
            return None

        primary_role = resolve_primary_role([br.role for br in user.branch_roles])
        return ActorContext(
            id=user.id,
            role=primary_role,
            branch_ids=[br.branch_id for br in user.branch_roles],
            is_admin=primary_role == RmsRole.ADMIN,
            portal_user_id=user.portal_user_id,
            email=user.email,
        )
