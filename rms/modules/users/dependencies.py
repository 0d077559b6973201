"""Role guard dependencies for RMS routes."""

from fastapi import Depends

from rms.exceptions import ForbiddenException
from rms.models.enums import RmsRole
from rms.modules.users.auth import get_current_actor
from rms.modules.users.service import ActorContext

ALL_RMS_ROLES: tuple[RmsRole, ...] = tuple(RmsRole)


def require_roles(*roles: RmsRole):
    """Factory that returns a dependency admitting only the listed roles.

    Admins pass every role check.
    """

    async def _check(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if actor.is_admin or actor.role in roles:
            return actor
        raise ForbiddenException(
            f"Role {actor.role.value} may not perform this action",
            details=[{"requiredRoles": [r.value for r in roles]}],
        )

    return _check
