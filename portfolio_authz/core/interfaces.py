"""
Contracts between the authorization engine and its embedding application.

The engine never performs I/O itself. Call sites obtain membership
snapshots through MembershipLookup, confirm property ownership through
PropertyOwnership before trusting a property-scoped check, and pair every
approved mutation with exactly one AuditRecorder.record call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from portfolio_authz.models.membership import Membership
from portfolio_authz.models.role import PermissionAuditAction


@runtime_checkable
class MembershipLookup(Protocol):
    def get_membership(self, user_id: str, portfolio_id: str) -> Membership | None:
        """Return the committed membership of user_id in portfolio_id, if any."""
        ...


@runtime_checkable
class PropertyOwnership(Protocol):
    def property_belongs_to_portfolio(self, property_id: str, portfolio_id: str) -> bool:
        """Check that property_id is part of portfolio_id."""
        ...


@dataclass(frozen=True)
class AuditRecordResult:
    """Outcome of writing one audit entry"""

    success: bool
    log_id: str | None = None
    error: str | None = None


@runtime_checkable
class AuditRecorder(Protocol):
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
        Persist one permission change.

        Failures are reported in the result, never raised: the authorization
        decision has already completed and must not be rolled back by a
        failing audit write.
        """
        ...
