"""Permission resolution against the current permission cache snapshot.

These are the entry points business services use to ask what a role may do:

    scope = get_permission(active_role, "project.view")
    if scope is False: refuse
    else: build a row filter from scope (see services.scope_filter)

All functions are synchronous and side-effect free. Each call reads one
snapshot, so a concurrent cache rebuild cannot produce a mixed answer.
Unknown roles and keys resolve to False; unknown roles have priority 0.
"""

from collections.abc import Mapping, Sequence

from workdesk.auth.permissions import PermissionValue
from workdesk.services.permission_cache import PermissionSnapshot, permission_cache


def _current(snapshot: PermissionSnapshot | None) -> PermissionSnapshot:
    return snapshot if snapshot is not None else permission_cache.snapshot()


def get_permission(
    role: str | None,
    key: str,
    snapshot: PermissionSnapshot | None = None,
) -> PermissionValue:
    """Return the stored permission value, or False if the role or key is unknown."""
    if not role:
        return False
    perms = _current(snapshot).permissions_by_role.get(role)
    if perms is None:
        return False
    return perms.get(key, False)


def has_permission(
    role: str | None,
    key: str,
    snapshot: PermissionSnapshot | None = None,
) -> bool:
    """True iff the role exists and holds ``key`` with any value other than False."""
    return get_permission(role, key, snapshot) is not False


def get_default_role(
    owned_roles: Sequence[str] | None,
    snapshot: PermissionSnapshot | None = None,
) -> str | None:
    """
    Pick the highest-priority role among ``owned_roles``.

    Equal priorities keep their relative input order (``sorted`` is
    stable), so the result is deterministic for a given input order and
    snapshot. Roles missing from the snapshot count as priority 0. The input
    sequence is not modified.

    Returns None when ``owned_roles`` is empty.
    """
    if not owned_roles:
        return None
    priority = _current(snapshot).priority_by_role
    ranked = sorted(owned_roles, key=lambda code: priority.get(code, 0), reverse=True)
    return ranked[0]


def get_role_name(code: str, snapshot: PermissionSnapshot | None = None) -> str:
    """Display name for a role code, falling back to the code itself."""
    return _current(snapshot).name_by_role.get(code, code)


def get_role_names(snapshot: PermissionSnapshot | None = None) -> dict[str, str]:
    return dict(_current(snapshot).name_by_role)


def get_role_priority(snapshot: PermissionSnapshot | None = None) -> dict[str, int]:
    return dict(_current(snapshot).priority_by_role)


def get_role_permissions(
    role: str | None,
    snapshot: PermissionSnapshot | None = None,
) -> Mapping[str, PermissionValue]:
    """Full permission map for a role (empty for unknown roles)."""
    if not role:
        return {}
    return dict(_current(snapshot).permissions_by_role.get(role, {}))
