"""Role record store.

CRUD over the ``roles`` table plus the usage counts that guard deletion.
Every successful mutation commits and then rebuilds the permission cache
before returning, so the next permission check sees the new values.

Validation happens before anything is written: a bad code, a malformed
permission map or a wrong-typed flag fails with ``VALIDATION_ERROR`` and the
session is left untouched.
"""

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.auth.default_roles import DEFAULT_ROLES, DefaultRole
from workdesk.auth.permissions import is_valid_role_code, permission_errors
from workdesk.db.models import KpiRecord, ProjectMember, Role, User
from workdesk.errors import (
    DuplicateRoleError,
    InvalidRoleOperationError,
    RoleInUseError,
    RoleNotAllowedForKpiError,
    RoleNotFoundError,
    RoleUsage,
    RoleValidationError,
)
from workdesk.logging_config import get_logger
from workdesk.services.permission_cache import permission_cache

logger = get_logger(__name__)

FLAG_FIELDS: tuple[str, ...] = (
    "is_active",
    "can_be_project_member",
    "can_be_kpi_role",
    "is_management_role",
    "can_record_capacity",
    "can_be_evaluator",
    "can_be_evaluated",
)

# Fields an update may touch. ``code`` and ``is_system`` are not in here.
MUTABLE_FIELDS: tuple[str, ...] = ("name", "description", "priority", "permissions") + FLAG_FIELDS


def _check_fields(data: Mapping[str, Any]) -> None:
    """Raise RoleValidationError for the first malformed field in ``data``."""
    if "name" in data:
        name = data["name"]
        if not isinstance(name, str) or not name.strip():
            raise RoleValidationError("Role name must be a non-empty string")

    if "description" in data and not isinstance(data["description"], str | None):
        raise RoleValidationError("Role description must be a string")

    if "priority" in data:
        priority = data["priority"]
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise RoleValidationError("Role priority must be an integer")

    if "permissions" in data:
        errors = permission_errors(data["permissions"])
        if errors:
            raise RoleValidationError("Invalid permissions: " + "; ".join(errors))

    for flag in FLAG_FIELDS:
        if flag in data and not isinstance(data[flag], bool):
            raise RoleValidationError(f"{flag} must be a boolean")


def _check_code(code: Any) -> str:
    if not is_valid_role_code(code):
        raise RoleValidationError(
            "Role code may only contain lowercase letters, digits and underscores, "
            "and must start with a letter"
        )
    return code


async def get_role(db: AsyncSession, code: str) -> Role:
    """Fetch a role by code (active or not)."""
    role = await db.get(Role, code)
    if role is None:
        raise RoleNotFoundError(f"Role '{code}' not found")
    return role


async def list_roles(db: AsyncSession, include_inactive: bool = False) -> list[Role]:
    """Roles sorted by priority (highest first), then creation order."""
    stmt = select(Role).order_by(Role.priority.desc(), Role.seq.asc())
    if not include_inactive:
        stmt = stmt.where(Role.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_role(
    db: AsyncSession,
    data: Mapping[str, Any],
    actor_id: uuid.UUID | None = None,
) -> Role:
    """Create a role. Fails with VALIDATION_ERROR or DUPLICATE."""
    code = data.get("code")
    name = data.get("name")
    if isinstance(code, str):
        code = code.strip()
    if not code or not name:
        raise RoleValidationError("Role code and name are required")
    _check_code(code)
    _check_fields(data)

    if await db.get(Role, code) is not None:
        raise DuplicateRoleError(f"Role code '{code}' already exists")

    role = Role(
        code=code,
        name=data["name"].strip(),
        description=data.get("description") or "",
        priority=data.get("priority", 0),
        permissions=dict(data.get("permissions") or {}),
        is_system=False,
        created_by=actor_id,
        updated_by=actor_id,
    )
    for flag in FLAG_FIELDS:
        if flag in data:
            setattr(role, flag, data[flag])

    db.add(role)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent create of the same code
        await db.rollback()
        raise DuplicateRoleError(f"Role code '{code}' already exists") from None
    await db.refresh(role)
    await permission_cache.invalidate(db)

    logger.info("Role created", role=code, actor=str(actor_id) if actor_id else None)
    return role


async def update_role(
    db: AsyncSession,
    code: str,
    patch: Mapping[str, Any],
    actor_id: uuid.UUID | None = None,
) -> Role:
    """Apply a partial update.

    Role codes are immutable: a patch carrying a different ``code`` fails
    with VALIDATION_ERROR if the new code is malformed, otherwise with
    INVALID_OPERATION.
    """
    new_code = patch.get("code")
    if new_code is not None and new_code != code:
        _check_code(new_code)
    _check_fields(patch)

    role = await get_role(db, code)

    if new_code is not None and new_code != code:
        if role.is_system:
            raise InvalidRoleOperationError("The code of a system role cannot be changed")
        raise InvalidRoleOperationError("Role codes cannot be changed after creation")

    changed: list[str] = []
    for field_name in MUTABLE_FIELDS:
        if field_name not in patch:
            continue
        value = patch[field_name]
        if field_name == "name":
            value = value.strip()
        elif field_name == "description":
            value = value or ""
        elif field_name == "permissions":
            value = dict(value)
        setattr(role, field_name, value)
        changed.append(field_name)

    role.updated_by = actor_id
    await db.commit()
    await db.refresh(role)
    await permission_cache.invalidate(db)

    logger.info("Role updated", role=code, fields=changed)
    return role


async def count_users_with_role(db: AsyncSession, code: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(User).where(User.roles.contains([code]))
    )
    return result.scalar_one()


async def get_role_usage(db: AsyncSession, code: str, role: Role | None = None) -> RoleUsage:
    """Count users, project members and KPI records referencing ``code``.

    Project member and KPI counts are only taken when the role's
    corresponding flag allows it to appear there.
    """
    if role is None:
        role = await get_role(db, code)

    user_count = await count_users_with_role(db, code)

    project_member_count = 0
    if role.can_be_project_member:
        result = await db.execute(
            select(func.count()).select_from(ProjectMember).where(ProjectMember.role == code)
        )
        project_member_count = result.scalar_one()

    kpi_record_count = 0
    if role.can_be_kpi_role:
        result = await db.execute(
            select(func.count()).select_from(KpiRecord).where(KpiRecord.role == code)
        )
        kpi_record_count = result.scalar_one()

    return RoleUsage(
        user_count=user_count,
        project_member_count=project_member_count,
        kpi_record_count=kpi_record_count,
    )


async def delete_role(db: AsyncSession, code: str) -> None:
    """Delete a role.

    Fails with INVALID_OPERATION for system roles (whatever their usage) and
    with IN_USE, stating the count, while anything still references the code.
    """
    role = await get_role(db, code)

    if role.is_system:
        raise InvalidRoleOperationError("System roles cannot be deleted, only deactivated")

    usage = await get_role_usage(db, code, role=role)
    if usage.user_count > 0:
        raise RoleInUseError(
            f"{usage.user_count} users are using this role; it cannot be deleted", usage
        )
    if usage.project_member_count > 0:
        raise RoleInUseError(
            f"{usage.project_member_count} project member records use this role; "
            "it cannot be deleted",
            usage,
        )
    if usage.kpi_record_count > 0:
        raise RoleInUseError(
            f"{usage.kpi_record_count} KPI records use this role; it cannot be deleted", usage
        )

    await db.delete(role)
    await db.commit()
    await permission_cache.invalidate(db)

    logger.info("Role deleted", role=code)


# ── Collaborator queries ─────────────────────────────────────────────────


async def list_project_member_roles(db: AsyncSession) -> list[Role]:
    """Active roles that may appear as a project member role."""
    result = await db.execute(
        select(Role)
        .where(Role.is_active.is_(True), Role.can_be_project_member.is_(True))
        .order_by(Role.priority.desc(), Role.seq.asc())
    )
    return list(result.scalars().all())


async def list_kpi_roles(db: AsyncSession) -> list[Role]:
    """Active roles that may appear on KPI records."""
    result = await db.execute(
        select(Role)
        .where(Role.is_active.is_(True), Role.can_be_kpi_role.is_(True))
        .order_by(Role.priority.desc(), Role.seq.asc())
    )
    return list(result.scalars().all())


async def validate_kpi_role(db: AsyncSession, code: str) -> Role:
    """Check that ``code`` names an active role allowed on KPI records."""
    if not isinstance(code, str) or not code.strip():
        raise RoleValidationError("Role code is invalid")

    normalized = code.strip().lower()
    role = await db.get(Role, normalized)
    if role is None or not role.is_active:
        raise RoleNotFoundError(f"Role '{code}' does not exist or is disabled")
    if not role.can_be_kpi_role:
        raise RoleNotAllowedForKpiError(
            f"Role '{role.name}' ({normalized}) is not allowed on KPI records"
        )
    return role


@dataclass
class KpiRoleCheck:
    valid: list[str] = field(default_factory=list)
    invalid: list[tuple[str, str]] = field(default_factory=list)


async def validate_kpi_roles(db: AsyncSession, codes: Iterable[str]) -> KpiRoleCheck:
    """Split ``codes`` into KPI-eligible and rejected (with a reason)."""
    codes = list(codes)
    check = KpiRoleCheck()
    if not codes:
        return check

    normalized = {code: code.strip().lower() for code in codes}
    result = await db.execute(
        select(Role).where(Role.code.in_(set(normalized.values())), Role.is_active.is_(True))
    )
    by_code = {role.code: role for role in result.scalars().all()}

    for code in codes:
        role = by_code.get(normalized[code])
        if role is None:
            check.invalid.append((code, "role does not exist or is disabled"))
        elif not role.can_be_kpi_role:
            check.invalid.append((code, f"role '{role.name}' is not allowed on KPI records"))
        else:
            check.valid.append(code)
    return check


# ── Seeding ──────────────────────────────────────────────────────────────


@dataclass
class SeedResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


def _seed_values(default: DefaultRole) -> dict[str, Any]:
    return {
        "name": default.name,
        "description": default.description,
        "priority": default.priority,
        "permissions": dict(default.permissions),
        "is_active": True,
        "is_system": True,
        "is_management_role": default.is_management_role,
        "can_record_capacity": default.can_record_capacity,
        "can_be_evaluator": default.can_be_evaluator,
        "can_be_evaluated": default.can_be_evaluated,
    }


async def seed_default_roles(
    db: AsyncSession,
    defaults: Iterable[DefaultRole] = DEFAULT_ROLES,
) -> SeedResult:
    """Upsert the default roles as system roles. Custom roles are left alone."""
    outcome = SeedResult()

    for default in defaults:
        values = _seed_values(default)
        role = await db.get(Role, default.code)
        if role is None:
            db.add(Role(code=default.code, **values))
            outcome.created.append(default.code)
            continue

        if all(getattr(role, key) == value for key, value in values.items()):
            outcome.unchanged.append(default.code)
            continue

        for key, value in values.items():
            setattr(role, key, value)
        outcome.updated.append(default.code)

    await db.commit()
    await permission_cache.invalidate(db)

    logger.info(
        "Default roles seeded",
        created=len(outcome.created),
        updated=len(outcome.updated),
        unchanged=len(outcome.unchanged),
    )
    return outcome
