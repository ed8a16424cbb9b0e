"""Tests for translating permission scopes into row filters."""

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.sql import operators

from workdesk.db.models import KpiRecord, Project
from workdesk.errors import InsufficientPermissionsError
from workdesk.services.scope_filter import (
    Scope,
    ScopeDeniedError,
    apply_scope,
    build_scope_filter,
    project_scope_filter,
    resolve_scope,
)


@pytest.fixture
def requester_id():
    return uuid.uuid4()


class TestResolveScope:
    def test_sales_role_gets_sales_scope(self):
        assert resolve_scope("sales", "project.view") == Scope.SALES

    def test_denied_raises(self):
        with pytest.raises(ScopeDeniedError) as exc_info:
            resolve_scope("translator", "finance.view")
        assert isinstance(exc_info.value, InsufficientPermissionsError)
        assert exc_info.value.status_code == 403

    def test_unknown_role_raises(self):
        with pytest.raises(ScopeDeniedError):
            resolve_scope("ghost", "project.view")


class TestBuildScopeFilter:
    def test_sales_scope_restricts_to_creator(self, requester_id):
        clause = project_scope_filter(resolve_scope("sales", "project.view"), requester_id)

        assert clause is not None
        assert clause.operator is operators.eq
        assert clause.left.name == "created_by"
        assert clause.left.table.name == "projects"
        assert clause.right.value == requester_id

    def test_self_scope_uses_owner_column(self, requester_id):
        clause = build_scope_filter(Scope.SELF, requester_id, owner_column=KpiRecord.user_id)
        assert clause.left.name == "user_id"
        assert clause.right.value == requester_id

    def test_all_scope_is_unrestricted(self, requester_id):
        assert project_scope_filter(resolve_scope("admin", "project.view"), requester_id) is None
        assert project_scope_filter("all", uuid.uuid4()) is None

    def test_true_is_unrestricted(self, requester_id):
        assert build_scope_filter(True, requester_id, owner_column=Project.created_by) is None

    def test_assigned_scope_uses_membership(self, requester_id):
        clause = project_scope_filter(Scope.ASSIGNED, requester_id)
        sql = str(clause)
        assert "projects.id IN" in sql
        assert "project_members" in sql

    def test_assigned_with_explicit_ids(self, requester_id):
        ids = [uuid.uuid4(), uuid.uuid4()]
        clause = build_scope_filter(
            "assigned",
            requester_id,
            owner_column=Project.created_by,
            id_column=Project.id,
            assigned_ids=ids,
        )
        assert "IN" in str(clause)

    def test_assigned_without_ids_is_a_programming_error(self, requester_id):
        with pytest.raises(ValueError):
            build_scope_filter("assigned", requester_id, owner_column=Project.created_by)

    def test_false_raises_instead_of_matching_nothing(self, requester_id):
        with pytest.raises(ScopeDeniedError):
            build_scope_filter(False, requester_id, owner_column=Project.created_by)

    def test_unknown_scope(self, requester_id):
        with pytest.raises(ValueError, match="Unknown permission scope"):
            build_scope_filter("team", requester_id, owner_column=Project.created_by)


class TestApplyScope:
    def test_no_clause_leaves_statement_alone(self):
        stmt = select(Project)
        assert apply_scope(stmt, None) is stmt

    def test_clause_is_added_as_where(self, requester_id):
        stmt = apply_scope(select(Project), project_scope_filter("sales", requester_id))
        assert "WHERE projects.created_by" in str(stmt)
