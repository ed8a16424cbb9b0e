"""Tests for the two-phase role gate and the permission gate."""

import uuid

import pytest

from workdesk.api.dependencies import (
    PHASE_ACTIVE_ROLE,
    PHASE_OWNED_ROLE,
    AuthenticatedUser,
    RoleContext,
    authorize_any_of,
    bind_active_role,
    evaluate_any_of,
    evaluate_permission,
    require_permission,
)
from workdesk.errors import InsufficientPermissionsError, UnauthorizedError


def _context(*roles, active=None):
    user = AuthenticatedUser(
        id=uuid.uuid4(), username="u", name="U", email="u@example.com", roles=list(roles)
    )
    return bind_active_role(user, active)


class TestEvaluateAnyOf:
    def test_active_role_phase(self):
        decision = evaluate_any_of(_context("finance"), ["admin", "finance"])
        assert decision.phase == PHASE_ACTIVE_ROLE

    def test_owned_role_phase(self):
        context = _context("sales", "finance", active="sales")
        decision = evaluate_any_of(context, ["finance"], allow_owned_role_fallback=True)
        assert decision.phase == PHASE_OWNED_ROLE
        assert decision.context.active_role == "sales"

    def test_owned_role_phase_can_be_disabled(self):
        context = _context("sales", "finance", active="sales")
        with pytest.raises(InsufficientPermissionsError):
            evaluate_any_of(context, ["finance"], allow_owned_role_fallback=False)

    def test_denied(self):
        with pytest.raises(InsufficientPermissionsError) as exc_info:
            evaluate_any_of(_context("translator"), ["admin", "finance"])
        assert exc_info.value.status_code == 403

    def test_no_context(self):
        with pytest.raises(UnauthorizedError):
            evaluate_any_of(None, ["admin"])

    def test_user_without_roles(self):
        with pytest.raises(InsufficientPermissionsError):
            evaluate_any_of(_context(), ["admin"])

    async def test_dependency_factory(self):
        dependency = authorize_any_of("admin", "pm")
        decision = await dependency(context=_context("pm"))
        assert decision.phase == PHASE_ACTIVE_ROLE


class TestEvaluatePermission:
    def test_scoped_grant_passes(self):
        grant = evaluate_permission(_context("sales"), "project.view")
        assert grant.scope == "sales"
        assert grant.key == "project.view"

    def test_false_is_denied(self):
        with pytest.raises(InsufficientPermissionsError, match="finance.view"):
            evaluate_permission(_context("translator"), "finance.view")

    def test_uses_active_role_only(self):
        # admin is owned but not active: permission checks never look at other owned roles
        context = _context("sales", "admin", active="sales")
        with pytest.raises(InsufficientPermissionsError):
            evaluate_permission(context, "role.manage")

    def test_no_active_role(self):
        context = RoleContext(user=_context().user, active_role=None, role_source="none")
        with pytest.raises(InsufficientPermissionsError):
            evaluate_permission(context, "project.view")

    async def test_dependency_factory(self):
        dependency = require_permission("role.manage")
        grant = await dependency(context=_context("admin"))
        assert grant.scope is True
