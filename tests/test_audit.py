"""
Test suite for the audit trail

Validates hash chaining, tamper detection and rollback behaviour.
"""

import pytest

from tax_wallet.audit import AuditTrail, AuditEvent, AuditEventType
from tax_wallet.storage import InMemoryStorage


ALICE = "0x" + "a" * 40


class TestAuditTrail:
    """Test hash-chained audit logging"""

    def setup_method(self):
        """Set up test fixtures"""
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_log_event_chains_hashes(self):
        """Each event points at the previous event's hash"""
        first = self.audit_trail.log_event(
            AuditEventType.DEPOSIT, "account", ALICE, {"amount": 100}, user_id=ALICE
        )
        second = self.audit_trail.log_event(
            AuditEventType.WITHDRAWAL, "account", ALICE, {"amount": 50, "fee": 5}
        )

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert first.verify_hash()
        assert second.verify_hash()

    def test_integer_metadata_is_stringified(self):
        """Large integers are stored as strings"""
        event = self.audit_trail.log_event(
            AuditEventType.DEPOSIT, "account", ALICE, {"amount": 2 ** 256 - 1}
        )
        assert event.metadata["amount"] == str(2 ** 256 - 1)

    def test_round_trip_from_storage(self):
        """Stored events rebuild identical objects"""
        event = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", ALICE, {"amount": 1})
        restored = AuditEvent.from_dict(self.storage.load("audit_events", event.id))
        assert restored == event
        assert restored.verify_hash()

    def test_queries(self):
        """Events can be filtered by entity and type"""
        bob = "0x" + "b" * 40
        self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {})
        self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", bob, {})
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", ALICE, {})

        assert len(self.audit_trail.get_events_for_entity("account", ALICE)) == 2
        assert len(self.audit_trail.get_events_for_entity("account", ALICE, limit=1)) == 1
        assert len(self.audit_trail.get_events_by_type(AuditEventType.DEPOSIT)) == 2
        assert self.audit_trail.count_events() == 3
        assert [e.sequence for e in self.audit_trail.get_all_events()] == [1, 2, 3]

    def test_verify_integrity_valid_chain(self):
        """An untouched chain verifies"""
        for amount in range(5):
            self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {"amount": amount})
        result = self.audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_verify_integrity_detects_tampering(self):
        """Editing a stored event breaks its hash"""
        event = self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {"amount": 100})
        self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {"amount": 1})

        stored = self.storage.load("audit_events", event.id)
        stored["metadata"]["amount"] = "1000000"
        self.storage.save("audit_events", event.id, stored)

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"][0]["event_id"] == event.id

    def test_verify_integrity_detects_relinking(self):
        """An event re-pointed at a forged predecessor breaks the chain"""
        self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {})
        second = self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {})

        second.previous_hash = "0" * 64
        second.current_hash = second.calculate_hash()
        self.storage.save("audit_events", second.id, second.to_dict())

        result = self.audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["hash_errors"] == []
        assert result["chain_breaks"][0]["event_id"] == second.id

    def test_head_rewinds_with_rollback(self):
        """The stored chain head follows transaction rollbacks"""
        first = self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {})
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.WITHDRAWAL, "account", ALICE, {})
                raise RuntimeError("abort")

        following = self.audit_trail.log_event(AuditEventType.TRANSFER, "account", ALICE, {})
        assert following.sequence == 2
        assert following.previous_hash == first.current_hash

    def test_rolled_back_event_does_not_break_chain(self):
        """Events written in a rolled-back transaction vanish cleanly"""
        self.audit_trail.log_event(AuditEventType.DEPOSIT, "account", ALICE, {})
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.WITHDRAWAL, "account", ALICE, {})
                raise RuntimeError("abort")
        self.audit_trail.log_event(AuditEventType.TRANSFER, "account", ALICE, {})

        assert self.audit_trail.count_events() == 2
        assert self.audit_trail.verify_integrity()["valid"]
