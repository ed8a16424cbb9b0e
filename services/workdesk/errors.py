"""Error taxonomy shared by the role store, role binding and the API layer.

Every error carries a stable machine code, a human message and the HTTP
status it maps to. The API layer renders them in the uniform envelope:

    {"success": false, "error": {"code": ..., "message": ..., "statusCode": ...}}
"""

from dataclasses import dataclass


class WorkdeskError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "statusCode": self.status_code,
            },
        }


# ── Identity (401) ───────────────────────────────────────────────────────


class IdentityError(WorkdeskError):
    """Caller could not be identified. Always terminal, never retried."""

    code = "UNAUTHORIZED"
    status_code = 401


class UnauthorizedError(IdentityError):
    code = "UNAUTHORIZED"


class InvalidTokenError(IdentityError):
    code = "INVALID_TOKEN"


class UserNotFoundError(IdentityError):
    code = "USER_NOT_FOUND"


class UserDisabledError(IdentityError):
    code = "USER_DISABLED"


class InvalidCredentialsError(IdentityError):
    code = "INVALID_CREDENTIALS"


# ── Authorization (403) ──────────────────────────────────────────────────


class AuthorizationError(WorkdeskError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403


class RoleNotOwnedError(AuthorizationError):
    code = "ROLE_NOT_OWNED"


class InsufficientPermissionsError(AuthorizationError):
    code = "INSUFFICIENT_PERMISSIONS"


# ── Role store ───────────────────────────────────────────────────────────


class RoleStoreError(WorkdeskError):
    code = "VALIDATION_ERROR"
    status_code = 400


class RoleValidationError(RoleStoreError):
    code = "VALIDATION_ERROR"


class DuplicateRoleError(RoleStoreError):
    code = "DUPLICATE"


class RoleNotFoundError(RoleStoreError):
    code = "ROLE_NOT_FOUND"
    status_code = 404


class InvalidRoleOperationError(RoleStoreError):
    code = "INVALID_OPERATION"


class RoleNotAllowedForKpiError(RoleStoreError):
    code = "ROLE_NOT_ALLOWED_FOR_KPI"


@dataclass(frozen=True)
class RoleUsage:
    """Reference counts for a role code."""

    user_count: int = 0
    project_member_count: int = 0
    kpi_record_count: int = 0

    @property
    def total(self) -> int:
        return self.user_count + self.project_member_count + self.kpi_record_count

    def to_dict(self) -> dict[str, int]:
        return {
            "userCount": self.user_count,
            "projectMemberCount": self.project_member_count,
            "kpiRecordCount": self.kpi_record_count,
        }


class RoleInUseError(RoleStoreError):
    """Deletion refused because the role is still referenced."""

    code = "IN_USE"

    def __init__(self, message: str, usage: RoleUsage):
        super().__init__(message)
        self.usage = usage

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["error"]["usage"] = self.usage.to_dict()
        return body
