"""
Audit recording for permission changes.

Every approved permission-changing operation is paired with exactly one
entry here. A failed write is logged and reported in the returned
AuditRecordResult; it never raises, because the authorization decision and
the mutation it approved have already committed.
"""

import hashlib
import json
import logging
from datetime import datetime, UTC
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portfolio_authz.core.interfaces import AuditRecorder, AuditRecordResult
from portfolio_authz.models.base import utcnow
from portfolio_authz.models.permission_audit_log import PermissionAuditLog
from portfolio_authz.models.property_access import PropertyAccess, serialize_property_access
from portfolio_authz.models.role import PermissionAuditAction, PortfolioRole
from portfolio_authz.repositories.permission_audit_log_repository import (
    PermissionAuditLogRepository,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# Concurrent writers on one portfolio race for the next sequence number
MAX_APPEND_ATTEMPTS = 5


def _serialize_value(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, default=str)


def _normalize_timestamp(timestamp: datetime | None) -> datetime:
    """Naive UTC, matching what the DateTime column returns on read."""
    if timestamp is None:
        return utcnow()
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(UTC).replace(tzinfo=None)
    return timestamp


def _role_value(role: PortfolioRole | str) -> str:
    return PortfolioRole(role).value


def compute_entry_hash(entry: PermissionAuditLog) -> str:
    """SHA-256 over the previous hash and the canonical content of an entry."""
    payload = {
        "portfolio_id": entry.portfolio_id,
        "sequence": entry.sequence,
        "action": PermissionAuditAction(entry.action).value,
        "user_id": entry.user_id,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "changed_by": entry.changed_by,
        "recorded_at": entry.recorded_at.isoformat(),
        "previous_hash": entry.previous_hash,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def log_role_change(
    recorder: AuditRecorder,
    user_id: str,
    portfolio_id: str,
    old_role: PortfolioRole | str,
    new_role: PortfolioRole | str,
    changed_by: str,
    old_property_access: PropertyAccess | None = _UNSET,
    new_property_access: PropertyAccess | None = _UNSET,
) -> AuditRecordResult:
    """
    Record a role change, optionally with the property access that changed alongside it.

    Property access values are only included when passed, so a plain role
    change does not log a misleading "full access" override.
    """
    old_value: dict[str, Any] = {"role": _role_value(old_role)}
    new_value: dict[str, Any] = {"role": _role_value(new_role)}
    if old_property_access is not _UNSET:
        old_value["propertyAccess"] = serialize_property_access(old_property_access)
    if new_property_access is not _UNSET:
        new_value["propertyAccess"] = serialize_property_access(new_property_access)

    return recorder.record(
        PermissionAuditAction.ROLE_CHANGE,
        user_id,
        portfolio_id,
        old_value,
        new_value,
        changed_by,
    )


def log_invitation_sent(
    recorder: AuditRecorder,
    portfolio_id: str,
    role: PortfolioRole | str,
    invited_by: str,
    invited_user_id: str | None = None,
    email: str | None = None,
    property_access: PropertyAccess | None = _UNSET,
    resent: bool = False,
) -> AuditRecordResult:
    """A resent invitation is recorded as a new invitation with resent set."""
    new_value: dict[str, Any] = {"role": _role_value(role)}
    if email:
        new_value["email"] = email
    if resent:
        new_value["resent"] = True
    if property_access is not _UNSET:
        new_value["propertyAccess"] = serialize_property_access(property_access)

    return recorder.record(
        PermissionAuditAction.INVITATION_SENT,
        invited_user_id,
        portfolio_id,
        None,
        new_value,
        invited_by,
    )


def log_invitation_accepted(
    recorder: AuditRecorder,
    user_id: str,
    portfolio_id: str,
    role: PortfolioRole | str,
    property_access: PropertyAccess | None = _UNSET,
) -> AuditRecordResult:
    """The accepting user is also the one making the change."""
    new_value: dict[str, Any] = {"role": _role_value(role)}
    if property_access is not _UNSET:
        new_value["propertyAccess"] = serialize_property_access(property_access)

    return recorder.record(
        PermissionAuditAction.INVITATION_ACCEPTED,
        user_id,
        portfolio_id,
        None,
        new_value,
        user_id,
    )


def log_access_revoked(
    recorder: AuditRecorder,
    user_id: str | None,
    portfolio_id: str,
    previous_role: PortfolioRole | str,
    changed_by: str,
    property_access: PropertyAccess | None = _UNSET,
) -> AuditRecordResult:
    old_value: dict[str, Any] = {"role": _role_value(previous_role)}
    if property_access is not _UNSET:
        old_value["propertyAccess"] = serialize_property_access(property_access)

    return recorder.record(
        PermissionAuditAction.ACCESS_REVOKED,
        user_id,
        portfolio_id,
        old_value,
        None,
        changed_by,
    )


def log_invitation_revoked(
    recorder: AuditRecorder,
    invited_user_id: str,
    portfolio_id: str,
    role: PortfolioRole | str,
    revoked_by: str,
    invitation_id: int,
) -> AuditRecordResult:
    return recorder.record(
        PermissionAuditAction.ACCESS_REVOKED,
        invited_user_id,
        portfolio_id,
        {"role": _role_value(role), "invitationId": invitation_id},
        None,
        revoked_by,
    )


def log_batch(recorder: AuditRecorder, changes: list[dict[str, Any]]) -> list[AuditRecordResult]:
    """
    Record several changes in order, e.g. both sides of an ownership transfer.

    Each item holds the keyword arguments of record(). Entries are written
    one by one so each extends the chain from the previous one.
    """
    return [recorder.record(**change) for change in changes]


class PermissionAuditService:
    """SQLAlchemy-backed implementation of the AuditRecorder contract"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PermissionAuditLogRepository(db)

    def record(
        self,
        action: PermissionAuditAction,
        user_id: str | None,
        portfolio_id: str,
        old_value: dict[str, Any] | None,
        new_value: dict[str, Any] | None,
        changed_by: str | None,
        timestamp: datetime | None = None,
    ) -> AuditRecordResult:
        """
        Append one permission change to the portfolio's audit chain.

        Args:
            action: Kind of permission change
            user_id: User whose permissions changed (None for pending invitations)
            portfolio_id: Portfolio where the change happened
            old_value: Previous permission state (None for new grants)
            new_value: New permission state (None for revocations)
            changed_by: User who made the change (None for system changes)
            timestamp: When the change happened, defaults to now

        Returns:
            AuditRecordResult with the new entry id, or the error on failure
        """
        action = PermissionAuditAction(action)
        recorded_at = _normalize_timestamp(timestamp)
        attempt = 1
        while True:
            try:
                entry = self._append_next(
                    action, user_id, portfolio_id, old_value, new_value, changed_by, recorded_at
                )
                break
            except IntegrityError as e:
                # Another writer claimed this sequence first; re-read the head
                self.db.rollback()
                if attempt >= MAX_APPEND_ATTEMPTS:
                    return self._write_failed(e, action, user_id, portfolio_id, changed_by)
                logger.info(
                    "Audit sequence collision in portfolio %s, retrying (attempt %d)",
                    portfolio_id,
                    attempt,
                )
                attempt += 1
            except SQLAlchemyError as e:
                self.db.rollback()
                return self._write_failed(e, action, user_id, portfolio_id, changed_by)

        logger.info(
            "Recorded %s for user %s in portfolio %s (sequence=%d)",
            action.value,
            user_id,
            portfolio_id,
            entry.sequence,
        )
        return AuditRecordResult(success=True, log_id=entry.id)

    def _append_next(
        self,
        action: PermissionAuditAction,
        user_id: str | None,
        portfolio_id: str,
        old_value: dict[str, Any] | None,
        new_value: dict[str, Any] | None,
        changed_by: str | None,
        recorded_at: datetime,
    ) -> PermissionAuditLog:
        latest = self.repo.get_latest(portfolio_id)
        entry = PermissionAuditLog(
            portfolio_id=portfolio_id,
            sequence=latest.sequence + 1 if latest else 1,
            action=action,
            user_id=user_id,
            old_value=_serialize_value(old_value),
            new_value=_serialize_value(new_value),
            changed_by=changed_by,
            recorded_at=recorded_at,
            previous_hash=latest.entry_hash if latest else None,
        )
        entry.entry_hash = compute_entry_hash(entry)
        return self.repo.append(entry)

    def _write_failed(
        self,
        error: SQLAlchemyError,
        action: PermissionAuditAction,
        user_id: str | None,
        portfolio_id: str,
        changed_by: str | None,
    ) -> AuditRecordResult:
        logger.error(
            "Audit log write failed: action=%s portfolio_id=%s user_id=%s changed_by=%s",
            action.value,
            portfolio_id,
            user_id,
            changed_by,
            exc_info=error,
        )
        return AuditRecordResult(success=False, error=str(error))

    def list_entries(self, portfolio_id: str) -> list[PermissionAuditLog]:
        return self.repo.list_for_portfolio(portfolio_id)

    def verify_chain(self, portfolio_id: str) -> bool:
        """
        Recompute a portfolio's hash chain.

        Returns:
            False if any entry was altered, removed or reordered
        """
        previous_hash = None
        for expected_sequence, entry in enumerate(self.repo.list_for_portfolio(portfolio_id), start=1):
            if entry.sequence != expected_sequence or entry.previous_hash != previous_hash:
                logger.warning(
                    "Audit chain broken at sequence %d in portfolio %s", entry.sequence, portfolio_id
                )
                return False
            if compute_entry_hash(entry) != entry.entry_hash:
                logger.warning(
                    "Audit entry hash mismatch at sequence %d in portfolio %s",
                    entry.sequence,
                    portfolio_id,
                )
                return False
            previous_hash = entry.entry_hash
        return True
