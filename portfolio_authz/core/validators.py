"""
Composite validators for member-management operations.

Each validator runs a fixed sequence of guards and returns the first denial
verbatim, or ALLOWED when every guard passes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from portfolio_authz.core.roles import can_manage_role
from portfolio_authz.core.security_validations import (
    INVALID_ROLE,
    parse_roles,
    validate_can_invite_members,
    validate_no_privilege_escalation,
    validate_no_self_promotion,
    validate_only_owner_can_change_roles,
    validate_owner_protection,
    validate_property_access_within_role,
    validate_role_assignment,
)
from portfolio_authz.models.role import PortfolioRole, PropertyPermission
from portfolio_authz.models.validation_result import (
    ALLOWED,
    Denied,
    SecurityErrorCode,
    SecurityValidationResult,
)

PropertyAccessLike = Mapping[str, Iterable[PropertyPermission | str]]


def validate_role_change(
    *,
    actor_user_id: str,
    target_user_id: str,
    actor_role: PortfolioRole | str,
    target_current_role: PortfolioRole | str,
    new_role: PortfolioRole | str,
    property_access: PropertyAccessLike | None = None,
) -> SecurityValidationResult:
    """
    Validate changing another member's role.

    Order: self-modification, owner protection, owner-only, escalation,
    then (when an override accompanies the change) property access against
    the new role.

    Example:
        validate_role_change(
            actor_user_id="user-1",
            target_user_id="user-2",
            actor_role="owner",
            target_current_role="member",
            new_role="admin",
        )
        # ALLOWED
    """
    result = validate_no_self_promotion(actor_user_id, target_user_id, actor_role, new_role)
    if not result.allowed:
        return result

    result = validate_owner_protection(target_current_role, new_role)
    if not result.allowed:
        return result

    result = validate_only_owner_can_change_roles(actor_role)
    if not result.allowed:
        return result

    result = validate_no_privilege_escalation(actor_role, target_current_role, new_role)
    if not result.allowed:
        return result

    if property_access is not None:
        result = validate_property_access_within_role(new_role, property_access)
        if not result.allowed:
            return result

    return ALLOWED


def validate_member_removal(
    *,
    actor_user_id: str,
    target_user_id: str,
    actor_role: PortfolioRole | str,
    target_role: PortfolioRole | str,
) -> SecurityValidationResult:
    """Validate removing a member from a portfolio."""
    if actor_user_id == target_user_id:
        return Denied(
            SecurityErrorCode.SELF_PROMOTION_DENIED,
            "Cannot remove yourself. Use the leave endpoint instead.",
        )

    result = validate_owner_protection(target_role, None, is_removal=True)
    if not result.allowed:
        return result

    roles = parse_roles(actor_role, target_role)
    if roles is None:
        return INVALID_ROLE
    actor_role, target_role = roles

    if not can_manage_role(actor_role, target_role):
        return Denied(
            SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            f"Cannot remove users with the {target_role.value} role",
        )

    return ALLOWED


def validate_invitation(
    *,
    actor_role: PortfolioRole | str,
    invited_role: PortfolioRole | str,
    property_access: PropertyAccessLike | None = None,
) -> SecurityValidationResult:
    """Validate sending an invitation for a given role and optional override."""
    result = validate_can_invite_members(actor_role)
    if not result.allowed:
        return result

    result = validate_role_assignment(actor_role, invited_role)
    if not result.allowed:
        return result

    if property_access is not None:
        result = validate_property_access_within_role(invited_role, property_access)
        if not result.allowed:
            return result

    return ALLOWED


def validate_property_access_update(
    actor_role: PortfolioRole | str,
    target_role: PortfolioRole | str,
    property_access: PropertyAccessLike | None,
) -> SecurityValidationResult:
    """
    Validate replacing a member's property access without changing their role.

    Only the owner may edit overrides, and the owner's own access is never
    restricted.
    """
    result = validate_only_owner_can_change_roles(actor_role)
    if isinstance(result, Denied):
        if result.error_code == SecurityErrorCode.INVALID_ROLE_CHANGE:
            return result
        return Denied(
            SecurityErrorCode.ONLY_OWNER_CAN_CHANGE_ROLES,
            "Only the portfolio owner can modify member property access",
        )

    roles = parse_roles(target_role)
    if roles is None:
        return INVALID_ROLE

    if roles[0] == PortfolioRole.OWNER:
        return Denied(
            SecurityErrorCode.OWNER_PROTECTION,
            "Cannot modify owner's property access",
        )

    return validate_property_access_within_role(roles[0], property_access)


def validate_leave(role: PortfolioRole | str) -> SecurityValidationResult:
    """Validate a member leaving a portfolio on their own; the owner must transfer first."""
    roles = parse_roles(role)
    if roles is None:
        return INVALID_ROLE

    if roles[0] == PortfolioRole.OWNER:
        return Denied(
            SecurityErrorCode.OWNER_PROTECTION,
            "The portfolio owner cannot leave. Transfer ownership first.",
        )
    return ALLOWED
