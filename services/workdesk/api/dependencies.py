"""FastAPI dependencies for authentication, role binding and authorization.

Per-request flow:

1. ``get_current_user``: verify the Bearer token, load the user.
   401 UNAUTHORIZED / INVALID_TOKEN / USER_NOT_FOUND / USER_DISABLED.
2. ``get_role_context``: bind exactly one active role. An explicit role
   header must name a role the user owns (403 ROLE_NOT_OWNED otherwise);
   without it the highest-priority owned role is used, falling back to the
   first owned role.
3. ``authorize_any_of(...)`` / ``require_permission(key)``: gate the route.

Nothing here writes to the role store or the permission cache.
"""

import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.auth.permissions import PermissionValue
from workdesk.auth.tokens import decode_access_token
from workdesk.config import settings
from workdesk.db.models import User
from workdesk.db.session import get_db
from workdesk.errors import (
    InsufficientPermissionsError,
    RoleNotOwnedError,
    UnauthorizedError,
    UserDisabledError,
    UserNotFoundError,
)
from workdesk.logging_config import bind_request_context, get_logger
from workdesk.services.permission_resolver import get_default_role, get_permission

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)

ROLE_SOURCE_HEADER = "header"
ROLE_SOURCE_DEFAULT = "default"
ROLE_SOURCE_FALLBACK = "fallback"
ROLE_SOURCE_NONE = "none"

PHASE_ACTIVE_ROLE = "active_role"
PHASE_OWNED_ROLE = "owned_role"


@dataclass
class AuthenticatedUser:
    """Identity of the caller, loaded fresh for every request."""

    id: uuid.UUID
    username: str
    name: str
    email: str
    roles: list[str] = field(default_factory=list)


@dataclass
class RoleContext:
    """The caller plus the single role this request runs under."""

    user: AuthenticatedUser
    active_role: str | None
    role_source: str


@dataclass
class AuthorizationDecision:
    """Outcome of ``authorize_any_of``; ``phase`` records which check passed."""

    context: RoleContext
    phase: str


@dataclass
class PermissionGrant:
    """Outcome of ``require_permission``; ``scope`` feeds the row filter."""

    context: RoleContext
    key: str
    scope: PermissionValue


# ── Identity ─────────────────────────────────────────────────────────────


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """Authenticate the Bearer token and load the user it names."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Authentication token not provided")

    user_id = decode_access_token(credentials.credentials)

    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError("User does not exist")
    if not user.is_active:
        raise UserDisabledError("User account is disabled")

    bind_request_context(user_id=str(user.id))

    return AuthenticatedUser(
        id=user.id,
        username=user.username,
        name=user.name,
        email=user.email,
        roles=list(user.roles or []),
    )


# ── Role binding ─────────────────────────────────────────────────────────


def bind_active_role(user: AuthenticatedUser, requested_role: str | None) -> RoleContext:
    """Choose the active role for a request.

    An explicit request is honoured only if the user owns that role; it
    never silently falls back to a default.
    """
    requested_role = (requested_role or "").strip()
    if requested_role:
        if requested_role not in user.roles:
            logger.info(
                "Role binding refused: role not owned",
                requested_role=requested_role,
                owned_roles=user.roles,
            )
            raise RoleNotOwnedError(f"You do not hold the role '{requested_role}'")
        return RoleContext(user=user, active_role=requested_role, role_source=ROLE_SOURCE_HEADER)

    default = get_default_role(user.roles)
    if default is not None:
        return RoleContext(user=user, active_role=default, role_source=ROLE_SOURCE_DEFAULT)

    # Legacy fallback: first owned role
    if user.roles:
        return RoleContext(user=user, active_role=user.roles[0], role_source=ROLE_SOURCE_FALLBACK)
    return RoleContext(user=user, active_role=None, role_source=ROLE_SOURCE_NONE)


async def get_role_context(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
) -> RoleContext:
    """Bind the active role from the role header or the user's default role."""
    context = bind_active_role(user, request.headers.get(settings.auth.role_header))
    bind_request_context(active_role=context.active_role)
    return context


# ── Authorization gate ───────────────────────────────────────────────────


def check_active_role(context: RoleContext, allowed_roles: Iterable[str]) -> bool:
    return context.active_role is not None and context.active_role in set(allowed_roles)


def check_any_owned_role(context: RoleContext, allowed_roles: Iterable[str]) -> bool:
    allowed = set(allowed_roles)
    return any(role in allowed for role in context.user.roles)


def evaluate_any_of(
    context: RoleContext | None,
    allowed_roles: Iterable[str],
    allow_owned_role_fallback: bool | None = None,
) -> AuthorizationDecision:
    """Two-phase role check: the active role first, then any owned role.

    The second phase exists for older clients that do not send a role
    header; it can be switched off with ``auth.allow_owned_role_fallback``.
    """
    if context is None:
        raise UnauthorizedError("Not authenticated")

    allowed = frozenset(allowed_roles)
    if allow_owned_role_fallback is None:
        allow_owned_role_fallback = settings.auth.allow_owned_role_fallback

    if check_active_role(context, allowed):
        return AuthorizationDecision(context=context, phase=PHASE_ACTIVE_ROLE)

    if allow_owned_role_fallback and check_any_owned_role(context, allowed):
        logger.debug(
            "Authorized through owned role",
            active_role=context.active_role,
            allowed_roles=sorted(allowed),
        )
        return AuthorizationDecision(context=context, phase=PHASE_OWNED_ROLE)

    raise InsufficientPermissionsError("Insufficient permissions")


def evaluate_permission(context: RoleContext | None, key: str) -> PermissionGrant:
    """Pass when the active role holds ``key`` with any value other than False."""
    if context is None:
        raise UnauthorizedError("Not authenticated")

    scope = get_permission(context.active_role, key)
    if scope is False:
        raise InsufficientPermissionsError(f"Permission '{key}' required")
    return PermissionGrant(context=context, key=key, scope=scope)


def authorize_any_of(
    *allowed_roles: str,
) -> Callable[..., Awaitable[AuthorizationDecision]]:
    """Dependency factory: require the active (or, for compatibility, any owned)
    role to be one of ``allowed_roles``.

    Usage:
        @router.get("/finance/summary")
        async def summary(auth: AuthorizationDecision = Depends(authorize_any_of("admin", "finance"))):
            ...
    """
    allowed = frozenset(allowed_roles)

    async def dependency(
        context: RoleContext = Depends(get_role_context),
    ) -> AuthorizationDecision:
        return evaluate_any_of(context, allowed)

    return dependency


def require_permission(key: str) -> Callable[..., Awaitable[PermissionGrant]]:
    """Dependency factory: require the active role to hold permission ``key``."""

    async def dependency(
        context: RoleContext = Depends(get_role_context),
    ) -> PermissionGrant:
        return evaluate_permission(context, key)

    return dependency
