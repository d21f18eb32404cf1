import logging
import secrets
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from portfolio_authz.config import settings
from portfolio_authz.core.context_builder import (
    build_permission_context_from_membership,
    build_property_permission_context,
)
from portfolio_authz.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from portfolio_authz.core.interfaces import AuditRecorder, AuditRecordResult
from portfolio_authz.core.validators import (
    PropertyAccessLike,
    validate_invitation,
    validate_leave,
    validate_member_removal,
    validate_property_access_update,
    validate_role_change,
)
from portfolio_authz.models.base import utcnow
from portfolio_authz.models.permission_context import PermissionContext, PropertyPermissionContext
from portfolio_authz.models.portfolio import Portfolio
from portfolio_authz.models.portfolio_membership import PortfolioMembership
from portfolio_authz.models.property import Property
from portfolio_authz.models.property_access import PropertyAccess
from portfolio_authz.models.role import InvitationStatus, PortfolioRole, PropertyPermission
from portfolio_authz.models.validation_result import Denied, SecurityErrorCode, SecurityValidationResult
from portfolio_authz.repositories.portfolio_membership_repository import (
    PortfolioMembershipRepository,
)
from portfolio_authz.repositories.portfolio_repository import PortfolioRepository
from portfolio_authz.services import audit_service
from portfolio_authz.services.audit_service import PermissionAuditService

logger = logging.getLogger(__name__)

# Distinguishes "leave the override unchanged" from None ("full access")
UNSET: Any = object()

_DEFAULT_RECORDER: Any = object()

UNUSABLE_INVITATION_MESSAGES = {
    InvitationStatus.ACCEPTED: "This invitation has already been used",
    InvitationStatus.EXPIRED: "This invitation has expired",
    InvitationStatus.REVOKED: "This invitation has been revoked",
}

# URL-safe, 43 characters
_INVITATION_TOKEN_BYTES = 32


class PortfolioMemberService:
    """
    Service layer for portfolio membership management.

    Every mutating operation follows the same sequence: load the target
    membership (row-locked), run the matching composite validator, raise on
    denial, apply the mutation, then record exactly one audit entry. Audit
    failures are logged and never turned into a denial.
    """

    def __init__(self, db: Session, audit: AuditRecorder | None = _DEFAULT_RECORDER):
        self.db = db
        self.membership_repo = PortfolioMembershipRepository(db)
        self.portfolio_repo = PortfolioRepository(db)
        if audit is _DEFAULT_RECORDER:
            audit = PermissionAuditService(db) if settings.AUDIT_LOG_ENABLED else None
        self.audit = audit

    def create_portfolio(self, name: str, owner_user_id: str) -> Portfolio:
        """
        Create a portfolio and the implicit owner membership for its creator.

        Args:
            name: Portfolio name
            owner_user_id: Upstream id of the creating user

        Returns:
            The new portfolio
        """
        portfolio = self.portfolio_repo.add(Portfolio(name=name))
        now = utcnow()
        membership = PortfolioMembership(
            portfolio_id=portfolio.id,
            user_id=owner_user_id,
            role=PortfolioRole.OWNER,
            property_access=None,
            invited_by=None,
            invited_at=now,
            accepted_at=now,
        )
        self.membership_repo.create(membership)
        logger.info("Created portfolio %s owned by %s", portfolio.id, owner_user_id)
        return portfolio

    def get_permission_context(self, user_id: str, portfolio_id: str) -> PermissionContext:
        """
        Build the permission context of a user in a portfolio.

        Raises:
            ForbiddenException: If the user has no accepted membership
        """
        membership = self.membership_repo.get_membership(user_id, portfolio_id)
        if membership is None or membership.is_pending:
            raise ForbiddenException(
                "You don't have access to this portfolio",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return build_permission_context_from_membership(membership)

    def check_property_permission(
        self,
        context: PermissionContext,
        property_id: str,
        permission: PropertyPermission | str,
    ) -> PropertyPermissionContext:
        """
        Resolve a member's permissions on a property and require one of them.

        The property must belong to the context's portfolio before the
        override is consulted, so an override key pointing into another
        portfolio grants nothing.

        Raises:
            NotFoundException: If the property is not part of the portfolio
            ForbiddenException: If the permission is not held
        """
        if not self.portfolio_repo.property_belongs_to_portfolio(property_id, context.portfolio_id):
            raise NotFoundException("Property not found")

        property_context = build_property_permission_context(context, property_id)
        permission = PropertyPermission(permission)
        if permission not in property_context.permissions:
            logger.warning(
                "Denied %s on property for user %s in portfolio %s",
                permission.value,
                context.user_id,
                context.portfolio_id,
            )
            raise ForbiddenException(
                f"You don't have {permission.value} permission for this property",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return property_context

    def get_property_permissions(self, context: PermissionContext, property_id: str) -> PropertyPermissionContext:
        """Resolve a member's permissions on a property without requiring any."""
        if not self.portfolio_repo.property_belongs_to_portfolio(property_id, context.portfolio_id):
            raise NotFoundException("Property not found")
        return build_property_permission_context(context, property_id)

    def list_accessible_property_ids(self, context: PermissionContext) -> list[str]:
        """Property ids the member can reach, enumerating the portfolio for full access."""
        portfolio_property_ids = self.portfolio_repo.get_property_ids(context.portfolio_id)
        if context.accessible_property_ids is None:
            return portfolio_property_ids
        return [pid for pid in portfolio_property_ids if pid in context.accessible_property_ids]

    def add_property(self, context: PermissionContext, name: str) -> Property:
        """
        Add a property to the portfolio (MEMBER or higher).

        Raises:
            ForbiddenException: If the member cannot add properties
        """
        if not context.can_add_properties:
            raise ForbiddenException(
                "You don't have permission to add properties",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return self.portfolio_repo.add_property(Property(portfolio_id=context.portfolio_id, name=name))

    def get_portfolio(self, context: PermissionContext) -> Portfolio:
        portfolio = self.portfolio_repo.get_by_id(context.portfolio_id)
        if not portfolio:
            raise NotFoundException("Portfolio not found")
        return portfolio

    def update_portfolio(self, context: PermissionContext, name: str) -> Portfolio:
        """
        Rename the portfolio (ADMIN or OWNER).

        Raises:
            ForbiddenException: If the member cannot edit the portfolio
        """
        if not context.can_edit_portfolio:
            raise ForbiddenException(
                "You don't have permission to edit this portfolio",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        portfolio = self.get_portfolio(context)
        portfolio.name = name
        return self.portfolio_repo.update(portfolio)

    def delete_portfolio(self, context: PermissionContext) -> None:
        """
        Delete the portfolio with all memberships and properties (OWNER only).

        The permission audit trail outlives the portfolio.

        Raises:
            ForbiddenException: If the member is not the owner
        """
        if not context.can_delete_portfolio:
            logger.warning(
                "Denied delete_portfolio for user %s in portfolio %s", context.user_id, context.portfolio_id
            )
            raise ForbiddenException(
                "Only the portfolio owner can delete the portfolio",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        portfolio = self.get_portfolio(context)
        self.portfolio_repo.delete(portfolio)
        logger.info("Deleted portfolio %s by %s", context.portfolio_id, context.user_id)

    def get_property(self, context: PermissionContext, property_id: str) -> Property:
        prop = self.portfolio_repo.get_property(property_id, context.portfolio_id)
        if not prop:
            raise NotFoundException("Property not found")
        return prop

    def list_user_portfolios(self, user_id: str) -> list[PortfolioMembership]:
        """All memberships of a user, including pending invitations."""
        return _active(self.membership_repo.get_user_memberships(user_id))

    def list_members(self, context: PermissionContext) -> list[PortfolioMembership]:
        """
        Get the members of the portfolio with their pending invitations.

        Every role may view the member list. Expired and revoked invitations
        are left out.
        """
        return _active(self.membership_repo.get_portfolio_members(context.portfolio_id))

    def invite_member(
        self,
        context: PermissionContext,
        user_id: str,
        role: PortfolioRole | str,
        property_access: PropertyAccessLike | None = None,
        email: str | None = None,
    ) -> PortfolioMembership:
        """
        Invite a user to the portfolio (ADMIN or OWNER).

        The membership is created pending with a single-use token that
        expires after INVITATION_EXPIRE_DAYS; it grants nothing until the
        invitee accepts. An expired or revoked invitation for the same user
        is replaced.

        Raises:
            ForbiddenException: If the invitation fails a security check
            ValidationException: If the user is already a member or invited, or the role is unknown
        """
        self._enforce(
            validate_invitation(
                actor_role=context.role,
                invited_role=role,
                property_access=property_access,
            ),
            context,
            "invite_member",
        )

        membership = self.membership_repo.get_membership_row(user_id, context.portfolio_id)
        if membership is not None:
            status = membership.invitation_status
            if status == InvitationStatus.ACCEPTED:
                raise ValidationException("User is already a member of this portfolio")
            if status == InvitationStatus.PENDING:
                raise ValidationException("User already has a pending invitation to this portfolio")
        else:
            membership = PortfolioMembership(portfolio_id=context.portfolio_id, user_id=user_id)

        membership.role = PortfolioRole(role)
        parsed_access = PropertyAccess.from_raw(property_access)
        membership.set_property_access(parsed_access)
        self._issue_invitation(membership, context.user_id)
        if membership.id is None:
            membership = self.membership_repo.create(membership)
        else:
            membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_invitation_sent,
            context.portfolio_id,
            role,
            context.user_id,
            invited_user_id=user_id,
            email=email,
            property_access=parsed_access,
        )
        return membership

    def list_invitations(self, context: PermissionContext) -> list[PortfolioMembership]:
        """
        Invitations of the portfolio that were never accepted, in every status (ADMIN or OWNER).

        Raises:
            ForbiddenException: If the member cannot invite members
        """
        if not context.can_invite_members:
            raise ForbiddenException(
                "You don't have permission to manage invitations",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )
        return self.membership_repo.get_invitations(context.portfolio_id)

    def revoke_invitation(self, context: PermissionContext, invitation_id: int) -> PortfolioMembership:
        """
        Revoke a pending invitation so its token can no longer be accepted.

        The actor must be allowed to issue an invitation for the invited role.

        Raises:
            NotFoundException: If no pending invitation has this id in the portfolio
            ForbiddenException: If the actor could not have sent the invitation
        """
        membership = self._load_pending_invitation(context, invitation_id, "revoke_invitation")

        membership.revoked_at = utcnow()
        membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_invitation_revoked,
            membership.user_id,
            context.portfolio_id,
            membership.role,
            context.user_id,
            membership.id,
        )
        return membership

    def resend_invitation(self, context: PermissionContext, invitation_id: int) -> PortfolioMembership:
        """
        Reissue a pending invitation with a fresh token and expiry.

        The previous token stops working.

        Raises:
            NotFoundException: If no pending invitation has this id in the portfolio
            ForbiddenException: If the actor could not have sent the invitation
        """
        membership = self._load_pending_invitation(context, invitation_id, "resend_invitation")

        self._issue_invitation(membership, context.user_id)
        membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_invitation_sent,
            context.portfolio_id,
            membership.role,
            context.user_id,
            invited_user_id=membership.user_id,
            property_access=membership.get_property_access(),
            resent=True,
        )
        return membership

    def validate_invitation_token(self, token: str) -> dict[str, Any]:
        """
        Describe the invitation behind a token without accepting it.

        Unknown or unusable tokens are reported with valid=False and the
        reason, never raised.
        """
        membership = self.membership_repo.get_by_invitation_token(token)
        if membership is None:
            return {"valid": False, "error": "Invalid invitation token"}

        status = membership.invitation_status
        return {
            "valid": status == InvitationStatus.PENDING,
            "status": status,
            "error": UNUSABLE_INVITATION_MESSAGES.get(status),
            "portfolio_id": membership.portfolio_id,
            "role": membership.role,
            "expires_at": membership.expires_at,
        }

    def accept_invitation(self, user_id: str, portfolio_id: str) -> PortfolioMembership:
        """
        Accept the caller's pending invitation to a portfolio.

        Raises:
            NotFoundException: If the user has no invitation to this portfolio
            ValidationException: If the invitation was already used, has expired or was revoked
        """
        membership = self.membership_repo.get_membership_for_update(user_id, portfolio_id)
        if not membership:
            raise NotFoundException("Invitation not found")
        return self._accept(membership)

    def accept_invitation_by_token(self, user_id: str, token: str) -> PortfolioMembership:
        """
        Accept an invitation identified by its token.

        Raises:
            NotFoundException: If the token is unknown
            ForbiddenException: If the invitation was issued to another user
            ValidationException: If the invitation was already used, has expired or was revoked
        """
        membership = self.membership_repo.get_by_invitation_token(token)
        if not membership:
            raise NotFoundException("Invalid invitation token")
        if membership.user_id != user_id:
            logger.warning(
                "Denied accept_invitation for user %s in portfolio %s: token issued to another user",
                user_id,
                membership.portfolio_id,
            )
            raise ForbiddenException(
                "This invitation was issued to another user",
                error_code=SecurityErrorCode.INSUFFICIENT_PRIVILEGES,
            )

        membership = self.membership_repo.get_membership_for_update(user_id, membership.portfolio_id)
        if membership is None or membership.invitation_token != token:
            # Removed or reissued since the lookup
            self.db.rollback()
            raise NotFoundException("Invalid invitation token")
        return self._accept(membership)

    def update_member_role(
        self,
        context: PermissionContext,
        target_user_id: str,
        new_role: PortfolioRole | str,
        property_access: PropertyAccessLike | None = UNSET,
    ) -> PortfolioMembership:
        """
        Change a member's role (OWNER only), optionally replacing their property access.

        When property_access is left UNSET the stored override is kept and
        must still fit inside the new role; a demotion that would leave it
        too wide is denied until a narrower override is supplied.

        Raises:
            NotFoundException: If the target is not a member
            ForbiddenException: If the change fails a security check
        """
        membership = self.membership_repo.get_membership_for_update(target_user_id, context.portfolio_id)
        if not membership:
            raise NotFoundException("Member not found in this portfolio")

        old_role = membership.role
        old_access = membership.get_property_access()
        effective_access = old_access if property_access is UNSET else property_access

        self._enforce(
            validate_role_change(
                actor_user_id=context.user_id,
                target_user_id=target_user_id,
                actor_role=context.role,
                target_current_role=old_role,
                new_role=new_role,
                property_access=effective_access,
            ),
            context,
            "update_member_role",
        )

        membership.role = PortfolioRole(new_role)
        access_change = {}
        if property_access is not UNSET:
            new_access = PropertyAccess.from_raw(property_access)
            membership.set_property_access(new_access)
            access_change = {"old_property_access": old_access, "new_property_access": new_access}
        membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_role_change,
            target_user_id,
            context.portfolio_id,
            old_role,
            membership.role,
            context.user_id,
            **access_change,
        )
        return membership

    def update_property_access(
        self,
        context: PermissionContext,
        target_user_id: str,
        property_access: PropertyAccessLike | None,
    ) -> PortfolioMembership:
        """
        Replace a member's property access without changing their role (OWNER only).

        Raises:
            NotFoundException: If the target is not a member
            ForbiddenException: If the update fails a security check
        """
        membership = self.membership_repo.get_membership_for_update(target_user_id, context.portfolio_id)
        if not membership:
            raise NotFoundException("Member not found in this portfolio")

        self._enforce(
            validate_property_access_update(context.role, membership.role, property_access),
            context,
            "update_property_access",
        )

        old_access = membership.get_property_access()
        new_access = PropertyAccess.from_raw(property_access)
        membership.set_property_access(new_access)
        membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_role_change,
            target_user_id,
            context.portfolio_id,
            membership.role,
            membership.role,
            context.user_id,
            old_property_access=old_access,
            new_property_access=new_access,
        )
        return membership

    def remove_member(self, context: PermissionContext, target_user_id: str) -> None:
        """
        Remove a member from the portfolio (ADMIN or OWNER, for roles below their own).

        Raises:
            NotFoundException: If the target is not a member
            ForbiddenException: If the removal fails a security check
        """
        membership = self.membership_repo.get_membership_for_update(target_user_id, context.portfolio_id)
        if not membership:
            raise NotFoundException("Member not found in this portfolio")

        self._enforce(
            validate_member_removal(
                actor_user_id=context.user_id,
                target_user_id=target_user_id,
                actor_role=context.role,
                target_role=membership.role,
            ),
            context,
            "remove_member",
        )

        previous_role = membership.role
        previous_access = membership.get_property_access()
        self.membership_repo.delete(membership)

        self._record(
            audit_service.log_access_revoked,
            target_user_id,
            context.portfolio_id,
            previous_role,
            context.user_id,
            property_access=previous_access,
        )

    def leave_portfolio(self, context: PermissionContext) -> None:
        """
        Leave a portfolio voluntarily.

        Raises:
            ForbiddenException: If the member is the owner
        """
        self._enforce(validate_leave(context.role), context, "leave_portfolio")

        membership = self.membership_repo.get_membership_for_update(context.user_id, context.portfolio_id)
        if not membership:
            raise NotFoundException("Member not found in this portfolio")

        previous_access = membership.get_property_access()
        self.membership_repo.delete(membership)

        self._record(
            audit_service.log_access_revoked,
            context.user_id,
            context.portfolio_id,
            context.role,
            context.user_id,
            property_access=previous_access,
        )

    def _enforce(self, result: SecurityValidationResult, context: PermissionContext, operation: str) -> None:
        """Raise the exception matching a denial; malformed input maps to 400, the rest to 403."""
        if not isinstance(result, Denied):
            return

        # Row locks taken while loading the target are released here
        self.db.rollback()
        logger.warning(
            "Denied %s for user %s in portfolio %s: %s",
            operation,
            context.user_id,
            context.portfolio_id,
            result.error_code.value,
        )
        if result.error_code == SecurityErrorCode.INVALID_ROLE_CHANGE:
            raise ValidationException(result.error, error_code=result.error_code)
        raise ForbiddenException(result.error, error_code=result.error_code)

    def _record(self, helper, *args, **kwargs) -> AuditRecordResult | None:
        if self.audit is None:
            return None
        result = helper(self.audit, *args, **kwargs)
        if not result.success:
            logger.error("Audit record missing for an approved change: %s", result.error)
        return result

    def _issue_invitation(self, membership: PortfolioMembership, invited_by: str) -> None:
        now = utcnow()
        membership.invited_by = invited_by
        membership.invited_at = now
        membership.accepted_at = None
        membership.revoked_at = None
        membership.expires_at = now + timedelta(days=settings.INVITATION_EXPIRE_DAYS)
        membership.invitation_token = secrets.token_urlsafe(_INVITATION_TOKEN_BYTES)

    def _load_pending_invitation(
        self, context: PermissionContext, invitation_id: int, operation: str
    ) -> PortfolioMembership:
        membership = self.membership_repo.get_invitation_for_update(invitation_id, context.portfolio_id)
        if membership is None or membership.invitation_status != InvitationStatus.PENDING:
            self.db.rollback()
            raise NotFoundException("Invitation not found or already used, expired or revoked")

        # Managing an invitation needs the same rights as sending it
        self._enforce(
            validate_invitation(actor_role=context.role, invited_role=membership.role),
            context,
            operation,
        )
        return membership

    def _accept(self, membership: PortfolioMembership) -> PortfolioMembership:
        status = membership.invitation_status
        if status != InvitationStatus.PENDING:
            self.db.rollback()
            raise ValidationException(UNUSABLE_INVITATION_MESSAGES[status])

        membership.accepted_at = utcnow()
        membership = self.membership_repo.update(membership)

        self._record(
            audit_service.log_invitation_accepted,
            membership.user_id,
            membership.portfolio_id,
            membership.role,
            property_access=membership.get_property_access(),
        )
        return membership


def _active(memberships: list[PortfolioMembership]) -> list[PortfolioMembership]:
    """Accepted memberships and invitations that can still be accepted."""
    return [
        m
        for m in memberships
        if m.invitation_status in (InvitationStatus.ACCEPTED, InvitationStatus.PENDING)
    ]
