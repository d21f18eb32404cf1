"""Role hierarchy checks for portfolio memberships."""

from __future__ import annotations

from typing import Any

from portfolio_authz.models.role import PortfolioRole

# Decreasing privilege
PORTFOLIO_ROLES: tuple[PortfolioRole, ...] = (
    PortfolioRole.OWNER,
    PortfolioRole.ADMIN,
    PortfolioRole.MEMBER,
    PortfolioRole.VIEWER,
)

_ROLE_RANK = {role: len(PORTFOLIO_ROLES) - 1 - index for index, role in enumerate(PORTFOLIO_ROLES)}

# Roles strictly below each role; the only roles it may assign or remove
ROLE_HIERARCHY: dict[PortfolioRole, frozenset[PortfolioRole]] = {
    role: frozenset(other for other in PORTFOLIO_ROLES if _ROLE_RANK[other] < _ROLE_RANK[role])
    for role in PORTFOLIO_ROLES
}


def is_valid_role(value: Any) -> bool:
    """Check if a value names a portfolio role."""
    return parse_role(value) is not None


def parse_role(value: Any) -> PortfolioRole | None:
    """Parse a role string, returning None when it is not a known role."""
    if value is None:
        return None
    try:
        return PortfolioRole(value)
    except ValueError:
        return None


def get_role_rank(role: PortfolioRole | str) -> int:
    """
    Get the numeric rank of a role (higher = more privileged).

    owner: 3, admin: 2, member: 1, viewer: 0

    Raises:
        ValueError: If role is not a portfolio role
    """
    return _ROLE_RANK[PortfolioRole(role)]


def is_role_higher_than(role_a: PortfolioRole | str, role_b: PortfolioRole | str) -> bool:
    """Check if role_a has strictly more privileges than role_b."""
    return get_role_rank(role_a) > get_role_rank(role_b)


def is_role_at_least(role: PortfolioRole | str, minimum_role: PortfolioRole | str) -> bool:
    """Check if role meets or exceeds minimum_role."""
    return get_role_rank(role) >= get_role_rank(minimum_role)


def get_manageable_roles(role: PortfolioRole | str) -> frozenset[PortfolioRole]:
    """
    Get the roles a user with the given role can assign to or remove from others.

    Never contains the role itself or anything above it:
    owner -> {admin, member, viewer}, admin -> {member, viewer},
    member and viewer -> {}.
    """
    return ROLE_HIERARCHY[PortfolioRole(role)]


def can_manage_role(user_role: PortfolioRole | str, target_role: PortfolioRole | str) -> bool:
    """Check if user_role sits strictly above target_role."""
    target = parse_role(target_role)
    return target is not None and target in get_manageable_roles(user_role)


def get_assignable_roles(user_role: PortfolioRole | str) -> list[PortfolioRole]:
    """Manageable roles ordered from most to least privileged, for option lists."""
    manageable = get_manageable_roles(user_role)
    return [role for role in PORTFOLIO_ROLES if role in manageable]
