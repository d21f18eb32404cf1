"""
Security guards that prevent privilege escalation.

Every guard is a pure function returning Allowed or Denied; none of them
raise for a denial. Rules enforced:

1. Nobody can change their own role (promotion or demotion)
2. The owner cannot be removed or downgraded
3. Only the owner can change member roles
4. Only admins and owners can invite members
5. Roles can only be granted strictly below the actor's own
6. Property-level access cannot exceed the role's default permissions

Unrecognized role values are reported as INVALID_ROLE_CHANGE rather than
raising, so a malformed request still yields a structured verdict.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from portfolio_authz.core.permission_tables import get_role_default_permissions
from portfolio_authz.core.roles import can_manage_role, get_role_rank, is_role_at_least, parse_role
from portfolio_authz.models.property_access import sort_permissions
from portfolio_authz.models.role import PortfolioRole, PropertyPermission
from portfolio_authz.models.validation_result import (
    ALLOWED,
    Denied,
    SecurityErrorCode,
    SecurityValidationResult,
)

INVALID_ROLE = Denied(SecurityErrorCode.INVALID_ROLE_CHANGE, "Unrecognized portfolio role")


def parse_roles(*values: Any) -> tuple[PortfolioRole, ...] | None:
    """Coerce every value to a PortfolioRole, or return None if any is unknown."""
    roles = tuple(parse_role(value) for value in values)
    if any(role is None for role in roles):
        return None
    return roles


def validate_no_self_promotion(
    actor_user_id: str,
    target_user_id: str,
    actor_role: PortfolioRole | str,
    new_role: PortfolioRole | str,
) -> SecurityValidationResult:
    """
    Deny any change to the actor's own role.

    Demoting yourself is rejected too: leaving a portfolio goes through the
    leave path, not role assignment.

    Example:
        validate_no_self_promotion("u1", "u1", "member", "admin")
        # Denied(SELF_PROMOTION_DENIED, ...)
    """
    roles = parse_roles(actor_role, new_role)
    if roles is None:
        return INVALID_ROLE
    actor_role, new_role = roles

    if actor_user_id == target_user_id:
        if get_role_rank(new_role) > get_role_rank(actor_role):
            return Denied(
                SecurityErrorCode.SELF_PROMOTION_DENIED,
                "You cannot promote yourself to a higher role",
            )
        return Denied(
            SecurityErrorCode.SELF_PROMOTION_DENIED,
            "You cannot modify your own role. Use the leave option instead.",
        )

    return ALLOWED


def validate_owner_protection(
    target_role: PortfolioRole | str,
    new_role: PortfolioRole | str | None = None,
    is_removal: bool = False,
) -> SecurityValidationResult:
    """
    Deny removing the owner or moving the owner to another role.

    Ownership changes hands only through an ownership transfer.

    Args:
        target_role: Current role of the member being changed or removed
        new_role: Proposed role for a role change, None for removals
        is_removal: Whether the member is being removed
    """
    roles = parse_roles(target_role) if new_role is None else parse_roles(target_role, new_role)
    if roles is None:
        return INVALID_ROLE
    target_role = roles[0]
    new_role = roles[1] if len(roles) > 1 else None

    if target_role == PortfolioRole.OWNER:
        if is_removal:
            return Denied(
                SecurityErrorCode.OWNER_PROTECTION,
                "Cannot remove the portfolio owner. Transfer ownership first.",
            )
        if new_role is not None and new_role != PortfolioRole.OWNER:
            return Denied(
                SecurityErrorCode.OWNER_PROTECTION,
                "Cannot change owner's role. Use transfer-ownership to change ownership.",
            )

    return ALLOWED


def validate_only_owner_can_change_roles(actor_role: PortfolioRole | str) -> SecurityValidationResult:
    """Deny role changes by anyone but the owner; admins may only invite and remove."""
    roles = parse_roles(actor_role)
    if roles is None:
        return INVALID_ROLE

    if roles[0] != PortfolioRole.OWNER:
        return Denied(
            SecurityErrorCode.ONLY_OWNER_CAN_CHANGE_ROLES,
            "Only the portfolio owner can change member roles",
        )
    return ALLOWED


def validate_can_invite_members(actor_role: PortfolioRole | str) -> SecurityValidationResult:
    """Deny invitations from anyone below admin."""
    roles = parse_roles(actor_role)
    if roles is None:
        return INVALID_ROLE

    if not is_role_at_least(roles[0], PortfolioRole.ADMIN):
        return Denied(
            SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            "Only administrators and owners can invite members",
        )
    return ALLOWED


def validate_role_assignment(
    actor_role: PortfolioRole | str,
    target_role: PortfolioRole | str,
) -> SecurityValidationResult:
    """
    Deny assigning a role the actor cannot manage.

    The owner role is never assignable here, and every other role must sit
    strictly below the actor's. validate_role_assignment("admin", "admin")
    is denied: admins cannot create peer admins.
    """
    roles = parse_roles(actor_role, target_role)
    if roles is None:
        return INVALID_ROLE
    actor_role, target_role = roles

    if target_role == PortfolioRole.OWNER:
        return Denied(
            SecurityErrorCode.ROLE_ESCALATION_DENIED,
            "Cannot assign owner role. Use transfer-ownership instead.",
        )

    if not can_manage_role(actor_role, target_role):
        return Denied(
            SecurityErrorCode.ROLE_ESCALATION_DENIED,
            f"You cannot assign the {target_role.value} role. "
            f"Your role ({actor_role.value}) can only assign roles below it.",
        )

    return ALLOWED


def validate_property_access_within_role(
    role: PortfolioRole | str,
    property_access: Mapping[str, Iterable[PropertyPermission | str]] | None,
) -> SecurityValidationResult:
    """
    Deny an override that lists any permission outside the role's defaults.

    None (full access at the role default) is always valid, as is an empty
    permission list for a property.

    Example:
        validate_property_access_within_role("viewer", {"prop-1": ["view", "edit"]})
        # Denied(PROPERTY_ACCESS_EXCEEDS_ROLE, ...)
    """
    roles = parse_roles(role)
    if roles is None:
        return INVALID_ROLE
    role = roles[0]

    if property_access is None:
        return ALLOWED

    role_permissions = get_role_default_permissions(role)
    allowed_text = ", ".join(p.value for p in sort_permissions(role_permissions))

    for permissions in property_access.values():
        for raw_permission in permissions:
            try:
                permission = PropertyPermission(raw_permission)
            except ValueError:
                return Denied(
                    SecurityErrorCode.PROPERTY_ACCESS_EXCEEDS_ROLE,
                    f"Property-level access contains an unrecognized permission. "
                    f"The {role.value} role only permits: {allowed_text}",
                )
            if permission not in role_permissions:
                return Denied(
                    SecurityErrorCode.PROPERTY_ACCESS_EXCEEDS_ROLE,
                    f'Property-level permission "{permission.value}" exceeds what the '
                    f"{role.value} role allows. The {role.value} role only permits: {allowed_text}",
                )

    return ALLOWED


def validate_no_privilege_escalation(
    actor_role: PortfolioRole | str,
    current_role: PortfolioRole | str,
    new_role: PortfolioRole | str,
) -> SecurityValidationResult:
    """
    Deny granting a role at or above the actor's own, or touching a peer or superior.

    The new-role check runs first and yields ROLE_ESCALATION_DENIED; the
    current-role check yields INSUFFICIENT_PRIVILEGES.
    """
    roles = parse_roles(actor_role, current_role, new_role)
    if roles is None:
        return INVALID_ROLE
    actor_role, current_role, new_role = roles

    if get_role_rank(new_role) >= get_role_rank(actor_role):
        return Denied(
            SecurityErrorCode.ROLE_ESCALATION_DENIED,
            f"Cannot promote user to {new_role.value}. You can only assign roles below your own.",
        )

    if get_role_rank(current_role) >= get_role_rank(actor_role):
        return Denied(
            SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            f"Cannot modify users with {current_role.value} role or higher",
        )

    return ALLOWED
