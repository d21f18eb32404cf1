import json
from datetime import datetime, timezone, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from portfolio_authz.core.interfaces import AuditRecorder, AuditRecordResult
from portfolio_authz.models.permission_audit_log import PermissionAuditLog
from portfolio_authz.models.property_access import PropertyAccess
from portfolio_authz.models.role import PermissionAuditAction, PortfolioRole
from portfolio_authz.services.audit_service import (
    MAX_APPEND_ATTEMPTS,
    PermissionAuditService,
    compute_entry_hash,
    log_access_revoked,
    log_batch,
    log_invitation_accepted,
    log_invitation_revoked,
    log_invitation_sent,
    log_role_change,
)
from tests.conftest import TestingSessionLocal


class RecordingAudit:
    """In-memory AuditRecorder capturing every call"""

    def __init__(self):
        self.calls = []

    def record(self, action, user_id, portfolio_id, old_value, new_value, changed_by, timestamp=None):
        self.calls.append(
            {
                "action": action,
                "user_id": user_id,
                "portfolio_id": portfolio_id,
                "old_value": old_value,
                "new_value": new_value,
                "changed_by": changed_by,
            }
        )
        return AuditRecordResult(success=True, log_id=str(len(self.calls)))


class TestAuditHelpers:
    """Tests for the log_* helpers against any recorder"""

    def test_fake_recorder_satisfies_protocol(self):
        assert isinstance(RecordingAudit(), AuditRecorder)

    def test_role_change_without_property_access(self):
        recorder = RecordingAudit()
        log_role_change(recorder, "u2", "pf-1", "member", PortfolioRole.ADMIN, "u1")

        call = recorder.calls[0]
        assert call["action"] == PermissionAuditAction.ROLE_CHANGE
        assert call["old_value"] == {"role": "member"}
        assert call["new_value"] == {"role": "admin"}
        assert call["changed_by"] == "u1"

    def test_role_change_with_property_access(self):
        recorder = RecordingAudit()
        log_role_change(
            recorder,
            "u2",
            "pf-1",
            "member",
            "member",
            "u1",
            old_property_access=None,
            new_property_access=PropertyAccess({"prop-1": ["edit", "view"]}),
        )

        call = recorder.calls[0]
        assert call["old_value"] == {"role": "member", "propertyAccess": None}
        assert call["new_value"] == {"role": "member", "propertyAccess": {"prop-1": ["view", "edit"]}}

    def test_invitation_sent(self):
        recorder = RecordingAudit()
        log_invitation_sent(recorder, "pf-1", "viewer", "u1", invited_user_id="u5", email="u5@example.com")

        call = recorder.calls[0]
        assert call["action"] == PermissionAuditAction.INVITATION_SENT
        assert call["user_id"] == "u5"
        assert call["old_value"] is None
        assert call["new_value"] == {"role": "viewer", "email": "u5@example.com"}

    def test_invitation_resent(self):
        recorder = RecordingAudit()
        log_invitation_sent(recorder, "pf-1", "viewer", "u1", invited_user_id="u5", resent=True)

        assert recorder.calls[0]["new_value"] == {"role": "viewer", "resent": True}

    def test_invitation_revoked(self):
        recorder = RecordingAudit()
        log_invitation_revoked(recorder, "u5", "pf-1", "viewer", "u1", 42)

        call = recorder.calls[0]
        assert call["action"] == PermissionAuditAction.ACCESS_REVOKED
        assert call["old_value"] == {"role": "viewer", "invitationId": 42}
        assert call["new_value"] is None
        assert call["changed_by"] == "u1"

    def test_invitation_accepted_is_self_initiated(self):
        recorder = RecordingAudit()
        log_invitation_accepted(recorder, "u5", "pf-1", "viewer")

        call = recorder.calls[0]
        assert call["action"] == PermissionAuditAction.INVITATION_ACCEPTED
        assert call["changed_by"] == "u5"

    def test_access_revoked(self):
        recorder = RecordingAudit()
        log_access_revoked(recorder, "u3", "pf-1", "member", "u1", property_access={})

        call = recorder.calls[0]
        assert call["action"] == PermissionAuditAction.ACCESS_REVOKED
        assert call["old_value"] == {"role": "member", "propertyAccess": {}}
        assert call["new_value"] is None

    def test_log_batch_preserves_order(self):
        recorder = RecordingAudit()
        results = log_batch(
            recorder,
            [
                {
                    "action": PermissionAuditAction.ROLE_CHANGE,
                    "user_id": "u1",
                    "portfolio_id": "pf-1",
                    "old_value": {"role": "owner"},
                    "new_value": {"role": "admin"},
                    "changed_by": "u1",
                },
                {
                    "action": PermissionAuditAction.ROLE_CHANGE,
                    "user_id": "u2",
                    "portfolio_id": "pf-1",
                    "old_value": {"role": "admin"},
                    "new_value": {"role": "owner"},
                    "changed_by": "u1",
                },
            ],
        )

        assert [r.success for r in results] == [True, True]
        assert [c["user_id"] for c in recorder.calls] == ["u1", "u2"]


class TestPermissionAuditService:
    """Tests for the hash-chained audit trail"""

    def record_three(self, service):
        log_invitation_sent(service, "pf-1", "member", "owner-1", invited_user_id="u2")
        log_invitation_accepted(service, "u2", "pf-1", "member")
        log_role_change(service, "u2", "pf-1", "member", "admin", "owner-1")

    def test_record_returns_log_id(self, db_session):
        service = PermissionAuditService(db_session)
        result = log_role_change(service, "u2", "pf-1", "member", "admin", "owner-1")

        assert result.success
        assert result.log_id is not None
        entry = db_session.get(PermissionAuditLog, result.log_id)
        assert entry.sequence == 1
        assert entry.previous_hash is None
        assert json.loads(entry.new_value) == {"role": "admin"}

    def test_entries_chain_per_portfolio(self, db_session):
        service = PermissionAuditService(db_session)
        self.record_three(service)
        log_role_change(service, "u9", "pf-2", "viewer", "member", "owner-2")

        entries = service.list_entries("pf-1")
        assert [e.sequence for e in entries] == [1, 2, 3]
        assert entries[1].previous_hash == entries[0].entry_hash
        assert entries[2].previous_hash == entries[1].entry_hash
        assert service.list_entries("pf-2")[0].sequence == 1

    def test_verify_chain_intact(self, db_session):
        service = PermissionAuditService(db_session)
        self.record_three(service)

        assert service.verify_chain("pf-1")
        assert service.verify_chain("empty-portfolio")

    def test_verify_chain_detects_edit(self, db_session):
        service = PermissionAuditService(db_session)
        self.record_three(service)

        entry = service.list_entries("pf-1")[1]
        entry.new_value = json.dumps({"role": "owner"})
        db_session.commit()

        assert not service.verify_chain("pf-1")

    def test_verify_chain_detects_deletion(self, db_session):
        service = PermissionAuditService(db_session)
        self.record_three(service)

        db_session.delete(service.list_entries("pf-1")[1])
        db_session.commit()

        assert not service.verify_chain("pf-1")

    def test_hash_stable_across_reload(self, db_session):
        service = PermissionAuditService(db_session)
        result = log_access_revoked(service, "u3", "pf-1", "viewer", "owner-1")
        db_session.expire_all()

        entry = db_session.get(PermissionAuditLog, result.log_id)
        assert compute_entry_hash(entry) == entry.entry_hash

    def test_aware_timestamp_stored_as_naive_utc(self, db_session):
        service = PermissionAuditService(db_session)
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        result = service.record(
            PermissionAuditAction.ROLE_CHANGE, "u2", "pf-1", {"role": "member"}, {"role": "viewer"}, "u1", stamp
        )

        entry = db_session.get(PermissionAuditLog, result.log_id)
        assert entry.recorded_at == datetime(2024, 5, 1, 10, 0)
        assert service.verify_chain("pf-1")

    def test_write_failure_reported_not_raised(self, db_session, monkeypatch):
        service = PermissionAuditService(db_session)

        def failing_append(entry):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(service.repo, "append", failing_append)
        result = log_role_change(service, "u2", "pf-1", "member", "admin", "owner-1")

        assert result.success is False
        assert "disk full" in result.error
        assert service.list_entries("pf-1") == []

    def test_unknown_role_in_helper_raises(self, db_session):
        service = PermissionAuditService(db_session)
        with pytest.raises(ValueError):
            log_role_change(service, "u2", "pf-1", "member", "emperor", "owner-1")


class TestConcurrentWriters:
    """Two sessions appending to the same portfolio chain"""

    def test_sequence_collision_is_retried(self, db_session, monkeypatch):
        writer_a = PermissionAuditService(db_session)
        other_session = TestingSessionLocal()
        try:
            writer_b = PermissionAuditService(other_session)
            log_invitation_sent(writer_a, "pf-1", "member", "owner-1", invited_user_id="u2")

            # Writer A read the head before writer B appended
            stale_head = writer_a.repo.get_latest("pf-1")
            log_invitation_sent(writer_b, "pf-1", "viewer", "owner-1", invited_user_id="u3")

            real_get_latest = writer_a.repo.get_latest
            heads = iter([stale_head])
            monkeypatch.setattr(
                writer_a.repo, "get_latest", lambda portfolio_id: next(heads, None) or real_get_latest(portfolio_id)
            )

            result = log_role_change(writer_a, "u2", "pf-1", "member", "admin", "owner-1")
        finally:
            other_session.close()

        assert result.success
        entries = writer_a.list_entries("pf-1")
        assert [e.sequence for e in entries] == [1, 2, 3]
        assert entries[2].action == PermissionAuditAction.ROLE_CHANGE
        assert writer_a.verify_chain("pf-1")

    def test_gives_up_after_bounded_attempts(self, db_session, monkeypatch):
        service = PermissionAuditService(db_session)
        log_invitation_sent(service, "pf-1", "member", "owner-1", invited_user_id="u2")
        log_invitation_accepted(service, "u2", "pf-1", "member")

        first = service.list_entries("pf-1")[0]
        calls = []

        def always_stale(portfolio_id):
            calls.append(portfolio_id)
            return first

        monkeypatch.setattr(service.repo, "get_latest", always_stale)
        result = log_role_change(service, "u2", "pf-1", "member", "admin", "owner-1")

        assert result.success is False
        assert len(calls) == MAX_APPEND_ATTEMPTS
        assert len(service.list_entries("pf-1")) == 2
