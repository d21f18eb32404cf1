"""Enumerations for portfolio role-based access control."""

from enum import Enum as PyEnum


class PortfolioRole(str, PyEnum):
    """
    Portfolio membership roles with hierarchical permissions.

    Role Hierarchy (highest to lowest):
    1. OWNER - Full control, can delete portfolio, change member roles, manage billing
    2. ADMIN - Manage properties, invite/remove members below admin
    3. MEMBER - View and edit properties, add new properties
    4. VIEWER - Read-only access to portfolio and properties

    Each portfolio has exactly one OWNER. Ownership only moves through an
    ownership transfer, never through role assignment.
    """

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class PropertyPermission(str, PyEnum):
    """
    Property-level permissions, listed in order of increasing privilege.

    Used for default-set membership only: holding "delete" does not imply
    "manage" unless the role default grants both.
    """

    VIEW = "view"
    EDIT = "edit"
    MANAGE = "manage"
    DELETE = "delete"


class PortfolioAction(str, PyEnum):
    """Coarse, portfolio-scoped operations gated by role."""

    VIEW_PORTFOLIO = "view_portfolio"
    EDIT_PORTFOLIO = "edit_portfolio"
    DELETE_PORTFOLIO = "delete_portfolio"
    INVITE_MEMBERS = "invite_members"
    REMOVE_MEMBERS = "remove_members"
    CHANGE_MEMBER_ROLES = "change_member_roles"
    ADD_PROPERTIES = "add_properties"
    VIEW_AUDIT_LOG = "view_audit_log"
    MANAGE_BILLING = "manage_billing"


class PermissionAuditAction(str, PyEnum):
    """Kinds of permission-changing events recorded in the audit trail"""

    ROLE_CHANGE = "role_change"
    INVITATION_SENT = "invitation_sent"
    INVITATION_ACCEPTED = "invitation_accepted"
    ACCESS_REVOKED = "access_revoked"


class InvitationStatus(str, PyEnum):
    """Lifecycle of an invitation; only pending invitations can be accepted"""

    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"
