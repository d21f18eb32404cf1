import uuid

from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from portfolio_authz.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from portfolio_authz.models.portfolio import Portfolio


class Property(Base, TimestampMixin):
    """
    An owned asset inside a portfolio.

    Only identity and portfolio ownership are stored here; property-level
    overrides reference these ids.
    """

    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    portfolio_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,  # Ownership checks filter on (id, portfolio_id)
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    portfolio: Mapped["Portfolio"] = relationship("Portfolio", back_populates="properties")
