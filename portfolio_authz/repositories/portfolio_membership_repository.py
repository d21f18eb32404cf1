"""Repository for PortfolioMembership model operations."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_authz.models.membership import Membership
from portfolio_authz.models.portfolio_membership import PortfolioMembership
from portfolio_authz.models.role import PortfolioRole


class PortfolioMembershipRepository:
    """
    Repository for PortfolioMembership model operations.

    Implements the MembershipLookup contract through get_membership, which
    returns a detached snapshot read from committed state.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_membership(self, user_id: str, portfolio_id: str) -> Membership | None:
        """
        Get a membership snapshot for a user in a portfolio.

        Args:
            user_id: User ID
            portfolio_id: Portfolio ID

        Returns:
            Membership snapshot or None if the user is not a member
        """
        row = self.get_membership_row(user_id, portfolio_id)
        return row.to_membership() if row else None

    def get_membership_row(self, user_id: str, portfolio_id: str) -> PortfolioMembership | None:
        return self.db.scalars(
            select(PortfolioMembership).where(
                PortfolioMembership.user_id == user_id,
                PortfolioMembership.portfolio_id == portfolio_id,
            )
        ).first()

    def get_membership_for_update(self, user_id: str, portfolio_id: str) -> PortfolioMembership | None:
        """
        Load a membership row with a row-level lock for a role-mutating operation.

        Concurrent role changes or removals on the same membership serialize
        on this lock until the caller commits. SQLite ignores FOR UPDATE and
        relies on its database-level write lock instead.
        """
        return self.db.scalars(
            select(PortfolioMembership)
            .where(
                PortfolioMembership.user_id == user_id,
                PortfolioMembership.portfolio_id == portfolio_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()

    def get_portfolio_members(self, portfolio_id: str) -> list[PortfolioMembership]:
        """
        Get all memberships for a portfolio, owner first.

        Args:
            portfolio_id: Portfolio ID

        Returns:
            List of PortfolioMembership objects for the portfolio
        """
        rows = self.db.scalars(
            select(PortfolioMembership)
            .where(PortfolioMembership.portfolio_id == portfolio_id)
            .order_by(PortfolioMembership.id)
        ).all()
        return sorted(rows, key=lambda m: m.role != PortfolioRole.OWNER)

    def get_user_memberships(self, user_id: str) -> list[PortfolioMembership]:
        """Get all memberships for a user (all portfolios they belong to)."""
        return list(
            self.db.scalars(
                select(PortfolioMembership).where(PortfolioMembership.user_id == user_id)
            ).all()
        )

    def get_owner(self, portfolio_id: str) -> PortfolioMembership | None:
        """
        Get the owner membership for a portfolio.

        Returns:
            PortfolioMembership with OWNER role or None
        """
        return self.db.scalars(
            select(PortfolioMembership).where(
                PortfolioMembership.portfolio_id == portfolio_id,
                PortfolioMembership.role == PortfolioRole.OWNER,
            )
        ).first()

    def create(self, membership: PortfolioMembership) -> PortfolioMembership:
        """
        Create a new portfolio membership.

        Raises:
            IntegrityError: If (portfolio_id, user_id) already exists
        """
        self.db.add(membership)
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def update(self, membership: PortfolioMembership) -> PortfolioMembership:
        """Commit pending changes to a membership and release its row lock."""
        self.db.commit()
        self.db.refresh(membership)
        return membership

    def delete(self, membership: PortfolioMembership) -> None:
        """Remove a user from a portfolio."""
        self.db.delete(membership)
        self.db.commit()

    def get_by_invitation_token(self, token: str) -> PortfolioMembership | None:
        """Find the membership an invitation token was issued for."""
        return self.db.scalars(
            select(PortfolioMembership).where(PortfolioMembership.invitation_token == token)
        ).first()

    def get_invitation_for_update(self, invitation_id: int, portfolio_id: str) -> PortfolioMembership | None:
        """Load a not-yet-accepted membership of a portfolio by id, row-locked."""
        return self.db.scalars(
            select(PortfolioMembership)
            .where(
                PortfolioMembership.id == invitation_id,
                PortfolioMembership.portfolio_id == portfolio_id,
                PortfolioMembership.accepted_at.is_(None),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).first()

    def get_invitations(self, portfolio_id: str) -> list[PortfolioMembership]:
        """All not-yet-accepted memberships of a portfolio, oldest invitation first."""
        return list(
            self.db.scalars(
                select(PortfolioMembership)
                .where(
                    PortfolioMembership.portfolio_id == portfolio_id,
                    PortfolioMembership.accepted_at.is_(None),
                )
                .order_by(PortfolioMembership.id)
            ).all()
        )
