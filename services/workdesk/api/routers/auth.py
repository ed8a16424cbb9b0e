"""Authentication endpoints.

Endpoints:
    POST /api/v1/auth/login  - exchange username/password for an access token
    GET  /api/v1/auth/me     - current user, owned roles and the bound active role
"""

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workdesk.api.dependencies import RoleContext, get_role_context
from workdesk.auth.passwords import verify_password
from workdesk.auth.tokens import create_access_token
from workdesk.db.models import User, utc_now
from workdesk.db.session import get_db
from workdesk.errors import InvalidCredentialsError, UserDisabledError, WorkdeskError
from workdesk.logging_config import get_logger
from workdesk.services.permission_resolver import (
    get_default_role,
    get_role_name,
    get_role_permissions,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)


def _owned_roles_json(codes: list[str]) -> list[dict]:
    return [{"code": code, "name": get_role_name(code)} for code in codes]


@router.post("/login")
async def login(
    body: dict = Body(...),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    """Verify credentials and issue an access token."""
    username = body.get("username")
    password = body.get("password")
    if not isinstance(username, str) or not isinstance(password, str):
        raise WorkdeskError(
            "Username and password are required", code="VALIDATION_ERROR", status_code=400
        )

    result = await db.execute(select(User).where(User.username == username.strip()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash):
        logger.info("Login failed", username=username)
        raise InvalidCredentialsError("Invalid username or password")
    if not user.is_active:
        raise UserDisabledError("User account is disabled")

    user.last_login_at = utc_now()
    await db.commit()

    roles = list(user.roles or [])
    token = create_access_token(user.id)
    logger.info("Login succeeded", user_id=str(user.id))

    return JSONResponse(
        content={
            "success": True,
            "token": token,
            "user": {
                "id": str(user.id),
                "username": user.username,
                "name": user.name,
                "email": user.email,
                "roles": _owned_roles_json(roles),
                "defaultRole": get_default_role(roles),
            },
        }
    )


@router.get("/me")
async def me(context: RoleContext = Depends(get_role_context)) -> JSONResponse:
    """Describe the caller and the role this request was bound to."""
    user = context.user
    return JSONResponse(
        content={
            "success": True,
            "data": {
                "id": str(user.id),
                "username": user.username,
                "name": user.name,
                "email": user.email,
                "roles": _owned_roles_json(user.roles),
                "activeRole": context.active_role,
                "roleSource": context.role_source,
                "permissions": dict(get_role_permissions(context.active_role)),
            },
        }
    )
