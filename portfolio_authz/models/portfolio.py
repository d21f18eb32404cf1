"""Portfolio model: the tenant isolation boundary."""

import uuid

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from portfolio_authz.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from portfolio_authz.models.portfolio_membership import PortfolioMembership
    from portfolio_authz.models.property import Property


class Portfolio(Base, TimestampMixin):
    """
    A collection of properties owned by one user.

    Collaborators reach a portfolio's data only through memberships, each
    carrying a role (Owner, Admin, Member, Viewer) and an optional
    property-level override.
    """

    __tablename__ = "portfolios"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    memberships: Mapped[list["PortfolioMembership"]] = relationship(
        "PortfolioMembership",
        back_populates="portfolio",
        cascade="all, delete-orphan",
    )
    properties: Mapped[list["Property"]] = relationship(
        "Property",
        back_populates="portfolio",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Portfolio(id={self.id}, name='{self.name}')>"
