"""Builders for PermissionContext and PropertyPermissionContext."""

from __future__ import annotations

from portfolio_authz.core import permission_tables as tables
from portfolio_authz.core.resolver import get_accessible_property_ids, get_property_permissions
from portfolio_authz.core.roles import get_assignable_roles
from portfolio_authz.models.membership import Membership
from portfolio_authz.models.permission_context import PermissionContext, PropertyPermissionContext
from portfolio_authz.models.property_access import PropertyAccess, sort_permissions
from portfolio_authz.models.role import PortfolioRole, PropertyPermission


def build_permission_context(
    user_id: str,
    portfolio_id: str,
    role: PortfolioRole | str,
    property_access: PropertyAccess | None,
) -> PermissionContext:
    """
    Build the complete permission snapshot for a member.

    Args:
        user_id: The member's user id
        portfolio_id: The portfolio being accessed
        role: The member's role (strings are coerced)
        property_access: The membership's override, None for full access

    Returns:
        PermissionContext with every flag precomputed

    Raises:
        ValueError: If role is not a portfolio role
    """
    role = PortfolioRole(role)

    return PermissionContext(
        user_id=user_id,
        portfolio_id=portfolio_id,
        role=role,
        property_access=property_access,
        can_view_portfolio=tables.can_view_portfolio(role),
        can_edit_portfolio=tables.can_edit_portfolio(role),
        can_delete_portfolio=tables.can_delete_portfolio(role),
        can_invite_members=tables.can_invite_members(role),
        can_remove_members=tables.can_remove_members(role),
        can_change_roles=tables.can_change_member_roles(role),
        can_add_properties=tables.can_add_properties(role),
        can_view_audit_log=tables.can_view_audit_log(role),
        can_manage_billing=tables.can_manage_billing(role),
        can_view=tables.can_view(role),
        can_edit=tables.can_edit(role),
        can_admin=tables.can_admin(role),
        assignable_roles=tuple(get_assignable_roles(role)),
        has_full_property_access=property_access is None,
        accessible_property_ids=get_accessible_property_ids(property_access),
    )


def build_permission_context_from_membership(membership: Membership) -> PermissionContext:
    """Build a context from a membership snapshot."""
    return build_permission_context(
        membership.user_id,
        membership.portfolio_id,
        membership.role,
        membership.property_access,
    )


def build_property_permission_context(
    context: PermissionContext, property_id: str
) -> PropertyPermissionContext:
    """Resolve one property's permissions for the member described by context."""
    permissions = get_property_permissions(context.role, property_id, context.property_access)

    return PropertyPermissionContext(
        property_id=property_id,
        can_view=PropertyPermission.VIEW in permissions,
        can_edit=PropertyPermission.EDIT in permissions,
        can_manage=PropertyPermission.MANAGE in permissions,
        can_delete=PropertyPermission.DELETE in permissions,
        permissions=tuple(sort_permissions(permissions)),
    )
