"""Permission values, role code rules and write-time validation.

A permission value is one of six variants:

    False       denied (same as an absent key)
    True        granted, unscoped
    "all"       granted, every record
    "self"      granted, records the requester owns/created
    "sales"     granted, records the requester created in a sales role
    "assigned"  granted, records the requester is assigned to

Anything else is rejected before it reaches the role store.
"""

import re
from collections.abc import Mapping
from typing import Any, Literal

PermissionValue = bool | Literal["all", "self", "sales", "assigned"]

SCOPE_VALUES: frozenset[str] = frozenset({"all", "self", "sales", "assigned"})

ROLE_CODE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
ROLE_CODE_MAX_LENGTH = 63
PERMISSION_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")

# Capabilities known to the application. Roles may carry other dotted keys;
# this list drives the admin UI and the default seed.
PERMISSION_KEYS: tuple[str, ...] = (
    "project.view",
    "project.edit",
    "project.create",
    "project.delete",
    "project.member.manage",
    "kpi.view",
    "kpi.view.self",
    "kpi.config",
    "finance.view",
    "finance.edit",
    "customer.view",
    "customer.edit",
    "user.manage",
    "system.config",
    "role.manage",
)


def is_permission_value(value: Any) -> bool:
    """True if value is one of the six permission variants.

    Integers are rejected even though ``1 == True`` in Python.
    """
    if value is True or value is False:
        return True
    return isinstance(value, str) and value in SCOPE_VALUES


def is_valid_role_code(code: Any) -> bool:
    return (
        isinstance(code, str)
        and len(code) <= ROLE_CODE_MAX_LENGTH
        and ROLE_CODE_PATTERN.match(code) is not None
    )


def permission_errors(permissions: Any) -> list[str]:
    """Return a list of problems with a permission map (empty when valid)."""
    if not isinstance(permissions, Mapping):
        return ["permissions must be an object mapping permission keys to values"]

    errors: list[str] = []
    for key, value in permissions.items():
        if not isinstance(key, str) or PERMISSION_KEY_PATTERN.match(key) is None:
            errors.append(f"invalid permission key {key!r}")
            continue
        if not is_permission_value(value):
            errors.append(
                f"invalid value for {key}: {value!r} "
                "(expected true, false, 'all', 'self', 'sales' or 'assigned')"
            )
    return errors


def normalize_value(value: Any) -> PermissionValue:
    """Coerce a stored value to a permission variant; unknown shapes become False.

    Used on the read path so a row written before validation existed can
    never leak an out-of-set value to callers.
    """
    if is_permission_value(value):
        return value
    return False
