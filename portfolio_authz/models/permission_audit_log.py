"""Append-only audit trail of permission changes."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, Text, DateTime, Enum, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_authz.models.base import Base, utcnow
from portfolio_authz.models.role import PermissionAuditAction


class PermissionAuditLog(Base):
    """
    One permission change in one portfolio.

    Entries form a hash chain per portfolio: entry_hash covers previous_hash
    and this entry's canonical content, so editing or deleting a past row
    breaks every later hash. sequence is unique per portfolio, so two
    concurrent writers cannot both extend the chain from the same entry.

    No foreign key to portfolios: the trail must outlive the portfolio.
    """

    __tablename__ = "permission_audit_log"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    portfolio_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[PermissionAuditAction] = mapped_column(
        Enum(PermissionAuditAction, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    # None for pending invitations where the user has no account yet
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    # None for system-initiated changes
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        UniqueConstraint("portfolio_id", "sequence", name="uq_audit_portfolio_sequence"),
        Index("ix_audit_portfolio_recorded", "portfolio_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<PermissionAuditLog(portfolio_id={self.portfolio_id}, sequence={self.sequence}, action={self.action.value})>"
