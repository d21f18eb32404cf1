"""Repository for PermissionAuditLog model operations."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_authz.models.permission_audit_log import PermissionAuditLog


class PermissionAuditLogRepository:
    """Append-only access to the permission audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def get_latest(self, portfolio_id: str) -> PermissionAuditLog | None:
        """Most recent entry of a portfolio's chain, or None if the chain is empty."""
        return self.db.scalars(
            select(PermissionAuditLog)
            .where(PermissionAuditLog.portfolio_id == portfolio_id)
            .order_by(PermissionAuditLog.sequence.desc())
            .limit(1)
        ).first()

    def list_for_portfolio(self, portfolio_id: str) -> list[PermissionAuditLog]:
        """All entries of a portfolio in chain order."""
        return list(
            self.db.scalars(
                select(PermissionAuditLog)
                .where(PermissionAuditLog.portfolio_id == portfolio_id)
                .order_by(PermissionAuditLog.sequence)
            ).all()
        )

    def append(self, entry: PermissionAuditLog) -> PermissionAuditLog:
        """
        Insert an entry.

        Raises:
            IntegrityError: If another writer already claimed this sequence
        """
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry
