"""Portfolio membership model linking users to portfolios with roles."""

from datetime import datetime

from sqlalchemy import Integer, String, ForeignKey, Enum, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from portfolio_authz.models.base import Base, TimestampMixin, utcnow
from portfolio_authz.models.membership import Membership
from portfolio_authz.models.property_access import PropertyAccess
from portfolio_authz.models.role import InvitationStatus, PortfolioRole

if TYPE_CHECKING:
    from portfolio_authz.models.portfolio import Portfolio


class PortfolioMembership(Base, TimestampMixin):
    """
    Join table linking users to portfolios with roles.

    property_access distinguishes SQL NULL (full access at the role default)
    from a JSON object, even an empty one (access only to the listed
    properties). none_as_null keeps Python None from being written as a
    JSON 'null' literal.

    Constraints:
    - Unique(portfolio_id, user_id) - one membership per user per portfolio
    - Each portfolio must have exactly one OWNER (enforced by the validators)
    """

    __tablename__ = "portfolio_memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    portfolio_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[PortfolioRole] = mapped_column(
        Enum(PortfolioRole, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PortfolioRole.MEMBER,
    )
    property_access: Mapped[dict | None] = mapped_column(
        JSON(none_as_null=True), nullable=True, default=None
    )
    invited_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    invited_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Invitation state; a single-use token identifies the invitation to the invitee
    invitation_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    portfolio: Mapped["Portfolio"] = relationship("Portfolio", back_populates="memberships")

    # Constraints
    __table_args__ = (
        UniqueConstraint("portfolio_id", "user_id", name="uq_portfolio_user"),
    )

    @property
    def invitation_status(self) -> InvitationStatus:
        """
        Current state of the invitation behind this membership.

        Expiry is evaluated on read; nothing rewrites the row when it lapses.
        """
        if self.accepted_at is not None:
            return InvitationStatus.ACCEPTED
        if self.revoked_at is not None:
            return InvitationStatus.REVOKED
        if self.expires_at is not None and utcnow() >= self.expires_at:
            return InvitationStatus.EXPIRED
        return InvitationStatus.PENDING

    def get_property_access(self) -> PropertyAccess | None:
        """Stored override parsed into its validated form."""
        return PropertyAccess.from_raw(self.property_access)

    def set_property_access(self, property_access: PropertyAccess | None) -> None:
        self.property_access = None if property_access is None else property_access.to_json()

    def to_membership(self) -> Membership:
        """Detach a snapshot for the authorization engine."""
        return Membership(
            user_id=self.user_id,
            portfolio_id=self.portfolio_id,
            role=PortfolioRole(self.role),
            property_access=self.get_property_access(),
            invited_by=self.invited_by,
            invited_at=self.invited_at,
            accepted_at=self.accepted_at,
        )

    def __repr__(self) -> str:
        return f"<PortfolioMembership(portfolio_id={self.portfolio_id}, user_id={self.user_id}, role={self.role.value})>"
