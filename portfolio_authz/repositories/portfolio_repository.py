"""Repository for Portfolio and Property model operations."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_authz.models.portfolio import Portfolio
from portfolio_authz.models.property import Property


class PortfolioRepository:
    """
    Repository for Portfolio and Property operations.

    Implements the PropertyOwnership contract through
    property_belongs_to_portfolio.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, portfolio_id: str) -> Portfolio | None:
        return self.db.get(Portfolio, portfolio_id)

    def add(self, portfolio: Portfolio) -> Portfolio:
        """Stage a new portfolio and assign its id without committing."""
        self.db.add(portfolio)
        self.db.flush()
        return portfolio

    def property_belongs_to_portfolio(self, property_id: str, portfolio_id: str) -> bool:
        """
        Check that a property is part of a portfolio.

        Call sites run this before trusting a property-scoped permission
        check, so a stale override key naming another portfolio's property
        cannot be used to reach it.
        """
        found = self.db.scalars(
            select(Property.id).where(
                Property.id == property_id,
                Property.portfolio_id == portfolio_id,
            )
        ).first()
        return found is not None

    def get_property_ids(self, portfolio_id: str) -> list[str]:
        """All property ids of a portfolio, for members with full access."""
        return list(
            self.db.scalars(
                select(Property.id).where(Property.portfolio_id == portfolio_id).order_by(Property.id)
            ).all()
        )

    def add_property(self, prop: Property) -> Property:
        self.db.add(prop)
        self.db.commit()
        self.db.refresh(prop)
        return prop

    def get_property(self, property_id: str, portfolio_id: str) -> Property | None:
        return self.db.scalars(
            select(Property).where(
                Property.id == property_id,
                Property.portfolio_id == portfolio_id,
            )
        ).first()

    def update(self, portfolio: Portfolio) -> Portfolio:
        self.db.commit()
        self.db.refresh(portfolio)
        return portfolio

    def delete(self, portfolio: Portfolio) -> None:
        """Delete a portfolio with its memberships and properties; audit entries are kept."""
        self.db.delete(portfolio)
        self.db.commit()
