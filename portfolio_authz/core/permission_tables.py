"""
Static role -> permission tables and the predicates derived from them.

Both tables are built once at import time and exposed read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from portfolio_authz.core.roles import PORTFOLIO_ROLES, is_role_at_least
from portfolio_authz.models.role import PortfolioAction, PortfolioRole, PropertyPermission

_ALL_PROPERTY_PERMISSIONS = frozenset(PropertyPermission)

# Ceiling for every property-level override: no grant may fall outside it
ROLE_DEFAULT_PERMISSIONS: Mapping[PortfolioRole, frozenset[PropertyPermission]] = MappingProxyType(
    {
        PortfolioRole.OWNER: _ALL_PROPERTY_PERMISSIONS,
        PortfolioRole.ADMIN: _ALL_PROPERTY_PERMISSIONS,
        PortfolioRole.MEMBER: frozenset({PropertyPermission.VIEW, PropertyPermission.EDIT}),
        PortfolioRole.VIEWER: frozenset({PropertyPermission.VIEW}),
    }
)

_OWNER_ONLY_ACTIONS = frozenset(
    {
        PortfolioAction.DELETE_PORTFOLIO,
        PortfolioAction.CHANGE_MEMBER_ROLES,
        PortfolioAction.MANAGE_BILLING,
    }
)

# Admins may invite and remove members but not change an existing member's role
PORTFOLIO_ROLE_ACTIONS: Mapping[PortfolioRole, frozenset[PortfolioAction]] = MappingProxyType(
    {
        PortfolioRole.OWNER: frozenset(PortfolioAction),
        PortfolioRole.ADMIN: frozenset(PortfolioAction) - _OWNER_ONLY_ACTIONS,
        PortfolioRole.MEMBER: frozenset(
            {PortfolioAction.VIEW_PORTFOLIO, PortfolioAction.ADD_PROPERTIES}
        ),
        PortfolioRole.VIEWER: frozenset({PortfolioAction.VIEW_PORTFOLIO}),
    }
)

PORTFOLIO_ROLE_LABELS: Mapping[PortfolioRole, str] = MappingProxyType(
    {
        PortfolioRole.OWNER: "Owner",
        PortfolioRole.ADMIN: "Administrator",
        PortfolioRole.MEMBER: "Member",
        PortfolioRole.VIEWER: "Viewer",
    }
)

PORTFOLIO_ROLE_DESCRIPTIONS: Mapping[PortfolioRole, str] = MappingProxyType(
    {
        PortfolioRole.OWNER: "Full access to all portfolio settings, properties, and members. Can delete the portfolio.",
        PortfolioRole.ADMIN: "Can manage properties and invite/remove members. Cannot delete the portfolio.",
        PortfolioRole.MEMBER: "Can view and edit properties. Cannot manage members or portfolio settings.",
        PortfolioRole.VIEWER: "Read-only access to portfolio and properties. Cannot make any changes.",
    }
)

PROPERTY_PERMISSION_LABELS: Mapping[PropertyPermission, str] = MappingProxyType(
    {
        PropertyPermission.VIEW: "View",
        PropertyPermission.EDIT: "Edit",
        PropertyPermission.MANAGE: "Manage",
        PropertyPermission.DELETE: "Delete",
    }
)

PROPERTY_PERMISSION_DESCRIPTIONS: Mapping[PropertyPermission, str] = MappingProxyType(
    {
        PropertyPermission.VIEW: "View property details, financials, and transactions",
        PropertyPermission.EDIT: "Modify property data, add transactions, update financials",
        PropertyPermission.MANAGE: "Update property settings, manage loans, and configure notifications",
        PropertyPermission.DELETE: "Remove the property from the portfolio",
    }
)

PORTFOLIO_ACTION_LABELS: Mapping[PortfolioAction, str] = MappingProxyType(
    {
        PortfolioAction.VIEW_PORTFOLIO: "View Portfolio",
        PortfolioAction.EDIT_PORTFOLIO: "Edit Portfolio Settings",
        PortfolioAction.DELETE_PORTFOLIO: "Delete Portfolio",
        PortfolioAction.INVITE_MEMBERS: "Invite Members",
        PortfolioAction.REMOVE_MEMBERS: "Remove Members",
        PortfolioAction.CHANGE_MEMBER_ROLES: "Change Member Roles",
        PortfolioAction.ADD_PROPERTIES: "Add Properties",
        PortfolioAction.VIEW_AUDIT_LOG: "View Audit Log",
        PortfolioAction.MANAGE_BILLING: "Manage Billing",
    }
)


@dataclass(frozen=True)
class RoleOption:
    """Role choice for select inputs"""

    value: PortfolioRole
    label: str
    description: str


@dataclass(frozen=True)
class PermissionOption:
    """Property permission choice for select inputs"""

    value: PropertyPermission
    label: str
    description: str


ROLE_OPTIONS: tuple[RoleOption, ...] = tuple(
    RoleOption(role, PORTFOLIO_ROLE_LABELS[role], PORTFOLIO_ROLE_DESCRIPTIONS[role])
    for role in PORTFOLIO_ROLES
)

PERMISSION_OPTIONS: tuple[PermissionOption, ...] = tuple(
    PermissionOption(
        permission,
        PROPERTY_PERMISSION_LABELS[permission],
        PROPERTY_PERMISSION_DESCRIPTIONS[permission],
    )
    for permission in PropertyPermission
)


def get_role_default_permissions(role: PortfolioRole | str) -> frozenset[PropertyPermission]:
    """Property permissions a role grants when no override is set."""
    return ROLE_DEFAULT_PERMISSIONS[PortfolioRole(role)]


def get_allowed_portfolio_actions(role: PortfolioRole | str) -> frozenset[PortfolioAction]:
    """All portfolio actions a role may perform."""
    return PORTFOLIO_ROLE_ACTIONS[PortfolioRole(role)]


def can_perform_portfolio_action(role: PortfolioRole | str, action: PortfolioAction | str) -> bool:
    """Check if a role may perform a portfolio action."""
    return PortfolioAction(action) in get_allowed_portfolio_actions(role)


def can_view_portfolio(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.VIEW_PORTFOLIO)


def can_edit_portfolio(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.EDIT_PORTFOLIO)


def can_delete_portfolio(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.DELETE_PORTFOLIO)


def can_invite_members(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.INVITE_MEMBERS)


def can_remove_members(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.REMOVE_MEMBERS)


def can_change_member_roles(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.CHANGE_MEMBER_ROLES)


def can_add_properties(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.ADD_PROPERTIES)


def can_view_audit_log(role: PortfolioRole | str) -> bool:
    return can_perform_portfolio_action(role, PortfolioAction.VIEW_AUDIT_LOG)


def can_manage_billing(role: PortfolioRole | str) -> bool:
    """Only owners can manage billing settings."""
    return can_perform_portfolio_action(role, PortfolioAction.MANAGE_BILLING)


def can_view(role: PortfolioRole | str) -> bool:
    """All roles can view (viewer is the minimum role)."""
    return is_role_at_least(role, PortfolioRole.VIEWER)


def can_edit(role: PortfolioRole | str) -> bool:
    """Members and above can edit."""
    return is_role_at_least(role, PortfolioRole.MEMBER)


def can_admin(role: PortfolioRole | str) -> bool:
    """Admins and owners have administrative permissions."""
    return is_role_at_least(role, PortfolioRole.ADMIN)
