"""Users module — portal identity to RMS actor resolution."""

from rms.modules.users.auth import get_current_actor
from rms.modules.users.dependencies import ALL_RMS_ROLES, require_roles
from rms.modules.users.service import (
    ROLE_PRIORITY,
    ActorContext,
    UsersService,
    branch_scope_where,
    resolve_primary_role,
)
