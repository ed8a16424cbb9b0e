"""Role administration endpoints.

Endpoints:
    GET    /api/v1/roles                       - list roles (?include_inactive=true)
    GET    /api/v1/roles/project-member-roles  - roles usable as project members (any user)
    GET    /api/v1/roles/kpi-roles             - roles usable on KPI records (any user)
    POST   /api/v1/roles                       - create role
    GET    /api/v1/roles/{code}                - show role
    PUT    /api/v1/roles/{code}                - update role
    DELETE /api/v1/roles/{code}                - delete role
    GET    /api/v1/roles/{code}/usage          - reference counts

Everything except project-member-roles and kpi-roles requires the
``role.manage`` permission on the active role.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.api.dependencies import (
    AuthenticatedUser,
    PermissionGrant,
    get_current_user,
    require_permission,
)
from workdesk.db.models import Role
from workdesk.db.session import get_db
from workdesk.errors import RoleValidationError
from workdesk.logging_config import get_logger
from workdesk.services import role_store

router = APIRouter(prefix="/roles", tags=["roles"])
logger = get_logger(__name__)

require_role_manage = require_permission("role.manage")

# Request body attribute -> Role column
_BODY_FIELDS: dict[str, str] = {
    "code": "code",
    "name": "name",
    "description": "description",
    "priority": "priority",
    "permissions": "permissions",
    "isActive": "is_active",
    "canBeProjectMember": "can_be_project_member",
    "canBeKpiRole": "can_be_kpi_role",
    "isManagementRole": "is_management_role",
    "canRecordCapacity": "can_record_capacity",
    "canBeEvaluator": "can_be_evaluator",
    "canBeEvaluated": "can_be_evaluated",
}


def _rfc3339(dt) -> str:
    if dt is None:
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _role_json(role: Role) -> dict:
    return {
        "code": role.code,
        "name": role.name,
        "description": role.description or "",
        "priority": role.priority,
        "permissions": role.permissions or {},
        "isActive": role.is_active,
        "isSystem": role.is_system,
        "canBeProjectMember": role.can_be_project_member,
        "canBeKpiRole": role.can_be_kpi_role,
        "isManagementRole": role.is_management_role,
        "canRecordCapacity": role.can_record_capacity,
        "canBeEvaluator": role.can_be_evaluator,
        "canBeEvaluated": role.can_be_evaluated,
        "createdAt": _rfc3339(role.created_at),
        "updatedAt": _rfc3339(role.updated_at),
    }


def _role_fields(body: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase body attributes to role fields; unknown keys are ignored."""
    if not isinstance(body, dict):
        raise RoleValidationError("Request body must be a JSON object")
    return {column: body[attr] for attr, column in _BODY_FIELDS.items() if attr in body}


@router.get("")
async def list_roles(
    include_inactive: bool = Query(False),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """List roles, highest priority first."""
    roles = await role_store.list_roles(db, include_inactive=include_inactive)
    return JSONResponse(content={"success": True, "data": [_role_json(r) for r in roles]})


@router.get("/project-member-roles")
async def list_project_member_roles(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Roles that may be picked for a project member (visible to every user)."""
    roles = await role_store.list_project_member_roles(db)
    return JSONResponse(content={"success": True, "data": [_role_json(r) for r in roles]})


@router.get("/kpi-roles")
async def list_kpi_roles(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Roles that may be recorded against a KPI entry (visible to every user)."""
    roles = await role_store.list_kpi_roles(db)
    return JSONResponse(content={"success": True, "data": [_role_json(r) for r in roles]})


@router.post("", status_code=201)
async def create_role(
    body: dict = Body(...),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Create a custom role."""
    role = await role_store.create_role(db, _role_fields(body), actor_id=grant.context.user.id)
    return JSONResponse(content={"success": True, "data": _role_json(role)}, status_code=201)


@router.get("/{code}")
async def show_role(
    code: str = Path(...),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    role = await role_store.get_role(db, code)
    return JSONResponse(content={"success": True, "data": _role_json(role)})


@router.put("/{code}")
async def update_role(
    code: str = Path(...),
    body: dict = Body(...),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Update a role. The code itself cannot change."""
    role = await role_store.update_role(
        db, code, _role_fields(body), actor_id=grant.context.user.id
    )
    return JSONResponse(content={"success": True, "data": _role_json(role)})


@router.delete("/{code}")
async def delete_role(
    code: str = Path(...),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Delete a non-system role that nothing references."""
    await role_store.delete_role(db, code)
    return JSONResponse(content={"success": True, "message": "Role deleted"})


@router.get("/{code}/usage")
async def role_usage(
    code: str = Path(...),
    grant: PermissionGrant = Depends(require_role_manage),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """How many users, project members and KPI records reference the role."""
    usage = await role_store.get_role_usage(db, code)
    return JSONResponse(content={"success": True, "data": usage.to_dict()})
