"""Permission snapshots handed to the API layer and any UI layer."""

from dataclasses import dataclass

from portfolio_authz.models.property_access import PropertyAccess, serialize_property_access
from portfolio_authz.models.role import PortfolioRole, PropertyPermission


@dataclass(frozen=True)
class PermissionContext:
    """
    Everything needed to enforce or render permissions for one member of one portfolio.

    All flags are computed eagerly when the context is built; reading them
    performs no lookups. The API layer and UI layer both consume this object
    so that permission logic is decided in one place.

    Attributes:
        user_id: The member's user id
        portfolio_id: The portfolio being accessed
        role: The member's portfolio role
        property_access: Override restricting property access, None for full access
        can_*_portfolio / can_*_members / ...: One flag per portfolio action
        can_view, can_edit, can_admin: Role bands (viewer+, member+, admin+)
        assignable_roles: Roles this member may assign or remove, highest first
        has_full_property_access: True when no override is set
        accessible_property_ids: Listed property ids, None for all properties
    """

    user_id: str
    portfolio_id: str
    role: PortfolioRole
    property_access: PropertyAccess | None

    # Portfolio-level actions
    can_view_portfolio: bool
    can_edit_portfolio: bool
    can_delete_portfolio: bool
    can_invite_members: bool
    can_remove_members: bool
    can_change_roles: bool
    can_add_properties: bool
    can_view_audit_log: bool
    can_manage_billing: bool

    # Role bands
    can_view: bool
    can_edit: bool
    can_admin: bool

    assignable_roles: tuple[PortfolioRole, ...]

    has_full_property_access: bool
    accessible_property_ids: frozenset[str] | None

    def is_owner(self) -> bool:
        """Check if the member owns the portfolio."""
        return self.role == PortfolioRole.OWNER

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "portfolioId": self.portfolio_id,
            "role": self.role.value,
            "propertyAccess": serialize_property_access(self.property_access),
            "canViewPortfolio": self.can_view_portfolio,
            "canEditPortfolio": self.can_edit_portfolio,
            "canDeletePortfolio": self.can_delete_portfolio,
            "canInviteMembers": self.can_invite_members,
            "canRemoveMembers": self.can_remove_members,
            "canChangeRoles": self.can_change_roles,
            "canAddProperties": self.can_add_properties,
            "canViewAuditLog": self.can_view_audit_log,
            "canManageBilling": self.can_manage_billing,
            "canView": self.can_view,
            "canEdit": self.can_edit,
            "canAdmin": self.can_admin,
            "assignableRoles": [role.value for role in self.assignable_roles],
            "hasFullPropertyAccess": self.has_full_property_access,
            "accessiblePropertyIds": (
                None if self.accessible_property_ids is None else sorted(self.accessible_property_ids)
            ),
        }

    def __repr__(self) -> str:
        return f"<PermissionContext(user_id={self.user_id}, portfolio_id={self.portfolio_id}, role={self.role.value})>"


@dataclass(frozen=True)
class PropertyPermissionContext:
    """Resolved permissions of one member on one property"""

    property_id: str
    can_view: bool
    can_edit: bool
    can_manage: bool
    can_delete: bool
    permissions: tuple[PropertyPermission, ...]

    def to_dict(self) -> dict:
        return {
            "propertyId": self.property_id,
            "canView": self.can_view,
            "canEdit": self.can_edit,
            "canManage": self.can_manage,
            "canDelete": self.can_delete,
            "permissions": [p.value for p in self.permissions],
        }
