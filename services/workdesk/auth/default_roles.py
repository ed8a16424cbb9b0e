"""Default role definitions used to seed an empty roles table.

These are seed data only. Permission resolution always reads the roles
table (through the permission cache); nothing here is consulted at request
time. Run ``python -m workdesk.cli.seed`` to upsert them as system roles.
"""

from dataclasses import dataclass, field

from workdesk.auth.permissions import PERMISSION_KEYS, PermissionValue


@dataclass(frozen=True)
class DefaultRole:
    code: str
    name: str
    priority: int
    permissions: dict[str, PermissionValue] = field(default_factory=dict)
    is_management_role: bool = False
    can_record_capacity: bool = False
    can_be_evaluator: bool = False
    can_be_evaluated: bool = False

    @property
    def description(self) -> str:
        return f"{self.name}（系统默认角色）"


def _grants(**granted: PermissionValue) -> dict[str, PermissionValue]:
    """Full permission map: every known key False unless granted.

    Keyword names use ``__`` for the dot, e.g. ``project__view="all"``.
    """
    perms: dict[str, PermissionValue] = dict.fromkeys(PERMISSION_KEYS, False)
    for key, value in granted.items():
        perms[key.replace("__", ".")] = value
    return perms


# Delivery roles see only projects they are assigned to.
_DELIVERY = _grants(project__view="assigned", kpi__view="self", kpi__view__self=True)

DEFAULT_ROLES: tuple[DefaultRole, ...] = (
    DefaultRole(
        code="admin",
        name="管理员",
        priority=100,
        permissions={key: True for key in PERMISSION_KEYS}
        | {"project.view": "all", "project.edit": "all", "kpi.view": "all"},
        is_management_role=True,
    ),
    DefaultRole(
        code="finance",
        name="财务",
        priority=90,
        permissions=_grants(
            project__view="all",
            kpi__view="all",
            kpi__view__self=True,
            finance__view=True,
            finance__edit=True,
            customer__view=True,
            customer__edit=True,
        ),
        is_management_role=True,
    ),
    DefaultRole(
        code="pm",
        name="项目经理",
        priority=80,
        permissions=_grants(
            project__view="all",
            project__create=True,
            project__member__manage=True,
            kpi__view="self",
            kpi__view__self=True,
            customer__edit=True,
        ),
        is_management_role=True,
        can_be_evaluator=True,
        can_be_evaluated=True,
    ),
    DefaultRole(
        code="admin_staff",
        name="综合岗",
        priority=75,
        permissions=_grants(
            project__view="all",
            project__create=True,
            project__member__manage=True,
            kpi__view="self",
            kpi__view__self=True,
        ),
    ),
    DefaultRole(
        code="sales",
        name="销售",
        priority=70,
        permissions=_grants(
            project__view="sales",
            project__edit="sales",
            project__create=True,
            kpi__view="self",
            kpi__view__self=True,
            customer__view=True,
            customer__edit=True,
        ),
        can_be_evaluated=True,
    ),
    DefaultRole(
        code="part_time_sales",
        name="兼职销售",
        priority=65,
        permissions=_grants(
            project__view="sales",
            project__edit="sales",
            project__create=True,
            kpi__view="self",
            kpi__view__self=True,
            customer__view=True,
        ),
        can_be_evaluated=True,
    ),
    DefaultRole(
        code="reviewer",
        name="审校",
        priority=50,
        permissions=dict(_DELIVERY),
        can_record_capacity=True,
        can_be_evaluator=True,
    ),
    DefaultRole(
        code="translator",
        name="翻译",
        priority=40,
        permissions=dict(_DELIVERY),
        can_record_capacity=True,
        can_be_evaluator=True,
    ),
    DefaultRole(
        code="layout",
        name="排版",
        priority=30,
        permissions=dict(_DELIVERY),
        can_be_evaluator=True,
    ),
)

DEFAULT_ROLE_CODES: frozenset[str] = frozenset(role.code for role in DEFAULT_ROLES)


def find_default_role(code: str) -> DefaultRole | None:
    """Look up a default role definition by code."""
    for role in DEFAULT_ROLES:
        if role.code == code:
            return role
    return None
