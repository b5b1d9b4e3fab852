"""
Dashboard sidebar, filtered per viewer with RenderGate.

Items without a permission are always shown; sections left empty are dropped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from mostrador.auth.evaluator import PermissionEvaluator
from mostrador.auth.permissions import Action, Permission, Resource
from mostrador.auth.render_gate import RenderGate


@dataclass(frozen=True)
class NavItem:
    title: str
    href: str
    permission: Optional[Permission] = None


@dataclass(frozen=True)
class NavSection:
    title: str
    items: tuple[NavItem, ...] = field(default_factory=tuple)


def _item(title: str, href: str, action: Optional[Action] = None, resource: Optional[Resource] = None) -> NavItem:
    permission = Permission(action, resource) if action and resource else None
    return NavItem(title=title, href=href, permission=permission)


NAVIGATION: tuple[NavSection, ...] = (
    NavSection(
        "Main",
        (
            _item("Dashboard", "/dashboard"),
            _item("Analytics", "/dashboard/analytics", Action.VIEW_ANALYTICS, Resource.ANALYTICS),
        ),
    ),
    NavSection(
        "Catalog",
        (
            _item("Products", "/dashboard/products", Action.READ, Resource.PRODUCT),
            _item("Categories", "/dashboard/categories", Action.READ, Resource.CATEGORY),
            _item("Combos", "/dashboard/combos", Action.READ, Resource.COMBO),
            _item("Inventory", "/dashboard/inventory", Action.READ, Resource.STOCK),
        ),
    ),
    NavSection(
        "Administration",
        (
            _item("Users", "/dashboard/users", Action.MANAGE_USERS, Resource.USER),
            _item("Permissions", "/dashboard/permissions", Action.MANAGE_ROLES, Resource.ROLE),
            _item("Audit log", "/dashboard/audit-logs", Action.READ, Resource.AUDIT_LOGS),
        ),
    ),
    NavSection(
        "Settings",
        (
            _item("Settings", "/dashboard/settings", Action.CONFIGURE_SETTINGS, Resource.SETTINGS),
            _item("Billing", "/dashboard/billing", Action.MANAGE_BILLING, Resource.BILLING),
        ),
    ),
    NavSection(
        "Developer",
        (
            _item("System logs", "/dashboard/dev/logs", Action.VIEW_LOGS, Resource.SYSTEM_LOGS),
            _item("Internal data", "/dashboard/dev/internal", Action.VIEW_INTERNAL_DATA, Resource.INTERNAL_DATA),
            _item("Stripe", "/dashboard/dev/stripe", Action.MANAGE_STRIPE, Resource.STRIPE_DATA),
        ),
    ),
)


async def visible_navigation(
    evaluator: PermissionEvaluator,
    *,
    user_id: str,
    organization_id: str,
    sections: tuple[NavSection, ...] = NAVIGATION,
) -> list[NavSection]:
    # Gates resolve one at a time: they share the request's database session.
    visible: list[NavSection] = []
    for section in sections:
        items: list[NavItem] = []
        for item in section.items:
            if item.permission is None:
                items.append(item)
                continue
            gate: RenderGate[NavItem] = RenderGate(
                evaluator,
                user_id=user_id,
                organization_id=organization_id,
                action=item.permission.action,
                resource=item.permission.resource,
            )
            rendered = await gate.resolve(item)
            if rendered is not None:
                items.append(rendered)
        if items:
            visible.append(NavSection(section.title, tuple(items)))
    return visible
