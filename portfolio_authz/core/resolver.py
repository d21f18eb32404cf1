"""
Effective property permissions for a membership.

The resolver intersects any per-property override with the role's default
permissions, so an override can only narrow access and never widen it, even
when the stored override was written without validation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from portfolio_authz.core.permission_tables import get_role_default_permissions
from portfolio_authz.models.role import PortfolioRole, PropertyPermission

PropertyAccessLike = Mapping[str, Iterable[PropertyPermission | str]]

_EMPTY: frozenset[PropertyPermission] = frozenset()


def _coerce_permissions(values: Iterable[PropertyPermission | str]) -> set[PropertyPermission]:
    # Unknown tokens drop out here instead of raising
    coerced = set()
    for value in values:
        try:
            coerced.add(PropertyPermission(value))
        except ValueError:
            continue
    return coerced


def get_property_permissions(
    role: PortfolioRole | str,
    property_id: str,
    property_access: PropertyAccessLike | None,
) -> frozenset[PropertyPermission]:
    """
    Get the effective permissions a member holds on one property.

    Args:
        role: The member's portfolio role
        property_id: The property to resolve
        property_access: The membership's override, or None for full access

    Returns:
        - the role default when property_access is None
        - an empty set when the override does not list property_id
        - the listed permissions intersected with the role default otherwise
    """
    role_permissions = get_role_default_permissions(role)
    if property_access is None:
        return role_permissions

    listed = property_access.get(property_id)
    if listed is None:
        return _EMPTY

    return frozenset(_coerce_permissions(listed) & role_permissions)


def has_property_permission(
    role: PortfolioRole | str,
    property_id: str,
    permission: PropertyPermission | str,
    property_access: PropertyAccessLike | None,
) -> bool:
    """Check if a member holds a specific permission on a property."""
    return PropertyPermission(permission) in get_property_permissions(role, property_id, property_access)


def can_view_property(role, property_id: str, property_access: PropertyAccessLike | None) -> bool:
    return has_property_permission(role, property_id, PropertyPermission.VIEW, property_access)


def can_edit_property(role, property_id: str, property_access: PropertyAccessLike | None) -> bool:
    return has_property_permission(role, property_id, PropertyPermission.EDIT, property_access)


def can_manage_property(role, property_id: str, property_access: PropertyAccessLike | None) -> bool:
    """Check if a member can update property settings, loans and notifications."""
    return has_property_permission(role, property_id, PropertyPermission.MANAGE, property_access)


def can_delete_property(role, property_id: str, property_access: PropertyAccessLike | None) -> bool:
    return has_property_permission(role, property_id, PropertyPermission.DELETE, property_access)


def has_any_property_access(property_access: PropertyAccessLike | None) -> bool:
    """True for full access (None) or an override listing at least one property."""
    if property_access is None:
        return True
    return len(property_access) > 0


def get_accessible_property_ids(property_access: PropertyAccessLike | None) -> frozenset[str] | None:
    """
    Get the property ids a member may access.

    Returns None when the member has full access; the caller must enumerate
    the portfolio's properties itself in that case.
    """
    if property_access is None:
        return None
    return frozenset(property_access.keys())
