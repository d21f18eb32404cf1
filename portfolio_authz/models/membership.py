"""Plain membership snapshot consumed by the authorization engine."""

from dataclasses import dataclass
from datetime import datetime

from portfolio_authz.models.property_access import PropertyAccess
from portfolio_authz.models.role import PortfolioRole


@dataclass(frozen=True)
class Membership:
    """
    A user's membership in one portfolio, detached from any database session.

    Attributes:
        user_id: Upstream user identifier
        portfolio_id: Portfolio the membership belongs to
        role: The member's portfolio role
        property_access: Override restricting property access, None for full access
        invited_by: User who sent the invitation (None for the creating owner)
        invited_at: When the invitation was sent
        accepted_at: When the invitation was accepted (None while pending)
    """

    user_id: str
    portfolio_id: str
    role: PortfolioRole
    property_access: PropertyAccess | None = None
    invited_by: str | None = None
    invited_at: datetime | None = None
    accepted_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        """Check if the invitation behind this membership has not been accepted."""
        return self.accepted_at is None
