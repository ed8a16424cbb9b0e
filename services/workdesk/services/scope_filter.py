"""Scope filter contract: turning a permission scope into a row filter.

Business services call the permission resolver for a scope and hand it to
``build_scope_filter`` together with the columns that identify ownership and
assignment on their own tables:

    scope = resolve_scope(ctx.active_role, "project.view")
    clause = build_scope_filter(
        scope,
        user.id,
        owner_column=Project.created_by,
        id_column=Project.id,
        assigned_ids=assigned_project_ids(user.id),
    )
    stmt = select(Project) if clause is None else select(Project).where(clause)

A denied scope raises instead of producing a filter that matches nothing, so
"not allowed" is never reported as "no records".
"""

import uuid
from enum import StrEnum
from typing import Any

from sqlalchemy import ColumnElement, Select, select

from workdesk.auth.permissions import PermissionValue
from workdesk.db.models import Project, ProjectMember
from workdesk.errors import InsufficientPermissionsError
from workdesk.services.permission_resolver import get_permission


class Scope(StrEnum):
    ALL = "all"
    SELF = "self"
    SALES = "sales"
    ASSIGNED = "assigned"


class ScopeDeniedError(InsufficientPermissionsError):
    """The active role holds no grant for the requested permission."""


def resolve_scope(role: str | None, key: str) -> PermissionValue:
    """Scope for ``key`` under ``role``; raises ScopeDeniedError when denied."""
    scope = get_permission(role, key)
    if scope is False:
        raise ScopeDeniedError(f"Role '{role}' has no '{key}' permission")
    return scope


def build_scope_filter(
    scope: PermissionValue,
    requester_id: uuid.UUID,
    *,
    owner_column: Any,
    id_column: Any = None,
    assigned_ids: Any = None,
) -> ColumnElement[bool] | None:
    """Translate a scope into a WHERE clause, or None for no restriction.

    - ``"all"`` / ``True``: None
    - ``"self"`` / ``"sales"``: ``owner_column == requester_id``
    - ``"assigned"``: ``id_column IN assigned_ids`` (a selectable or list the
      service supplies from its own membership relation)
    - ``False``: raises ScopeDeniedError
    """
    if scope is False:
        raise ScopeDeniedError("Permission denied for this operation")
    if scope is True or scope == Scope.ALL:
        return None
    if scope in (Scope.SELF, Scope.SALES):
        return owner_column == requester_id
    if scope == Scope.ASSIGNED:
        if id_column is None or assigned_ids is None:
            raise ValueError("'assigned' scope needs id_column and assigned_ids")
        return id_column.in_(assigned_ids)
    raise ValueError(f"Unknown permission scope: {scope!r}")


def apply_scope(stmt: Select, clause: ColumnElement[bool] | None) -> Select:
    """Add a scope clause to a SELECT (no-op for unrestricted scopes)."""
    if clause is None:
        return stmt
    return stmt.where(clause)


def assigned_project_ids(user_id: uuid.UUID) -> Select:
    """Subquery of project ids the user is a member of."""
    return select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)


def project_scope_filter(
    scope: PermissionValue, requester_id: uuid.UUID
) -> ColumnElement[bool] | None:
    """Reference filter for the projects table."""
    return build_scope_filter(
        scope,
        requester_id,
        owner_column=Project.created_by,
        id_column=Project.id,
        assigned_ids=assigned_project_ids(requester_id),
    )
