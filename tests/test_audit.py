"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection, integrity verification
and the refusal to record secrets in event metadata.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from bank_onboarding.storage import InMemoryStorage, SQLiteStorage
from bank_onboarding.audit import AuditTrail, AuditEvent, AuditEventType
from bank_onboarding.errors import SensitiveDataError
from bank_onboarding.models import ProvisioningPhase


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimal, datetime and enum values become JSON-friendly"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.ONBOARDING_HALTED,
            entity_type="identity",
            entity_id="user-1",
            previous_hash="",
            current_hash="",
            metadata={
                "balance": Decimal("0.00"),
                "at": now,
                "failed_phase": ProvisioningPhase.CREATING_ACCOUNT,
                "nested": {"phase": ProvisioningPhase.IDLE},
            }
        )

        assert event.metadata["balance"] == "0.00"
        assert event.metadata["at"] == now.isoformat()
        assert event.metadata["failed_phase"] == "creating_account"
        assert event.metadata["nested"] == {"phase": "idle"}

    def test_hash_covers_attempt_id(self):
        now = datetime.now(timezone.utc)
        fields = dict(
            id="AUDIT001", created_at=now, updated_at=now,
            event_type=AuditEventType.ACCOUNT_CREATED, entity_type="account",
            entity_id="42", previous_hash="", current_hash="", metadata={}
        )
        first = AuditEvent(attempt_id="attempt-1", **fields)
        second = AuditEvent(attempt_id="attempt-2", **fields)

        assert first.calculate_hash() != second.calculate_hash()
        assert len(first.calculate_hash()) == 64

    def test_round_trip_through_dict(self):
        trail = AuditTrail(InMemoryStorage())
        event = trail.log_event(AuditEventType.CARD_ISSUED, "card", "7", {"account_id": "42"})

        restored = AuditEvent.from_dict(event.to_dict())

        assert restored.event_type == AuditEventType.CARD_ISSUED
        assert restored.verify_hash()


class TestAuditTrail:
    """Test the hash-chained trail"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_first_event(self):
        event = self.audit_trail.log_event(
            event_type=AuditEventType.ONBOARDING_STARTED,
            entity_type="identity",
            entity_id="user-1",
            attempt_id="attempt-1"
        )

        assert event.previous_hash == ""
        assert event.current_hash == event.calculate_hash()
        assert event.attempt_id == "attempt-1"
        assert self.audit_trail.count_events() == 1

    def test_log_multiple_events_chain(self):
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "42")
        second = self.audit_trail.log_event(AuditEventType.CARD_ISSUE_FAILED, "account", "42")
        third = self.audit_trail.log_event(AuditEventType.ROLLBACK_COMPLETED, "account", "42")

        assert second.previous_hash == first.current_hash
        assert third.previous_hash == second.current_hash

    def test_get_events_for_entity(self):
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "42")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "43")
        self.audit_trail.log_event(AuditEventType.ROLLBACK_COMPLETED, "account", "42")

        events = self.audit_trail.get_events_for_entity("account", "42")

        assert [e.event_type for e in events] == [
            AuditEventType.ACCOUNT_CREATED,
            AuditEventType.ROLLBACK_COMPLETED,
        ]

    def test_get_events_by_type_and_attempt(self):
        self.audit_trail.log_event(AuditEventType.RETRY_REQUESTED, "account", "42", attempt_id="a")
        self.audit_trail.log_event(AuditEventType.RETRY_REQUESTED, "account", "42", attempt_id="b")
        self.audit_trail.log_event(AuditEventType.AUTH_FAILED, "identity", "user-1", attempt_id="b")

        assert len(self.audit_trail.get_events_by_type(AuditEventType.RETRY_REQUESTED)) == 2
        assert len(self.audit_trail.get_events_by_type(AuditEventType.RETRY_REQUESTED, "b")) == 1
        assert len(self.audit_trail.events(attempt_id="b")) == 2

    def test_events_keep_insertion_order(self):
        types = [
            AuditEventType.ONBOARDING_STARTED,
            AuditEventType.PROFILE_SUBMITTED,
            AuditEventType.ACCOUNT_CREATED,
            AuditEventType.CARD_ISSUED,
        ]
        for event_type in types:
            self.audit_trail.log_event(event_type, "identity", "user-1", attempt_id="a")

        assert [e.event_type for e in self.audit_trail.events(attempt_id="a")] == types

    def test_verify_integrity_valid_chain(self):
        for i in range(5):
            self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", str(i))

        result = self.audit_trail.verify_integrity()

        assert result["valid"] is True
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_verify_integrity_detects_hash_tampering(self):
        event = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "42")
        self.audit_trail.log_event(AuditEventType.CARD_ISSUED, "card", "7")

        tampered = self.storage.load(self.audit_trail.table_name, event.id)
        tampered["metadata"] = {"account_type": "CHECKING"}
        self.storage.save(self.audit_trail.table_name, event.id, tampered)

        result = self.audit_trail.verify_integrity()

        assert result["valid"] is False
        assert len(result["hash_errors"]) == 1
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_verify_integrity_detects_chain_break(self):
        first = self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "42")
        second = self.audit_trail.log_event(AuditEventType.CARD_ISSUED, "card", "7")

        tampered = self.storage.load(self.audit_trail.table_name, second.id)
        tampered["previous_hash"] = "broken_chain_hash"
        self.storage.save(self.audit_trail.table_name, second.id, tampered)

        result = self.audit_trail.verify_integrity()

        assert result["valid"] is False
        assert len(result["chain_breaks"]) == 1
        assert result["chain_breaks"][0]["expected_previous_hash"] == first.current_hash

    def test_verify_integrity_empty_trail(self):
        result = self.audit_trail.verify_integrity()

        assert result["valid"] is True
        assert result["total_events"] == 0

    def test_refuses_secret_metadata(self):
        with pytest.raises(SensitiveDataError):
            self.audit_trail.log_event(
                AuditEventType.CARD_ISSUED, "card", "7", {"card": {"tempPin": "4821"}}
            )

        assert self.audit_trail.count_events() == 0

    def test_chain_resumes_after_reload(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "audit.db")
        first = AuditTrail(storage)
        last = first.log_event(AuditEventType.ACCOUNT_CREATED, "account", "42")

        reopened = AuditTrail(storage)
        event = reopened.log_event(AuditEventType.CARD_ISSUED, "card", "7")

        assert event.previous_hash == last.current_hash
        assert reopened.verify_integrity()["valid"] is True
        storage.close()
