"""
Test suite for audit module

Tests hash-chained audit trail, tamper detection and integrity verification.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from loan_ledger.storage import InMemoryStorage
from loan_ledger.audit import AuditTrail, AuditEvent, AuditEventType


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        """Decimals, datetimes and enums become JSON-safe values"""
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.LOAN_ORIGINATED,
            entity_type="loan",
            entity_id="LOAN001",
            sequence=1,
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal('1234.56'),
                "when": now,
                "type": AuditEventType.LOAN_PAID_OFF,
                "nested": {"values": [Decimal('1.10')]}
            }
        )

        assert event.metadata["amount"] == "1234.56"
        assert event.metadata["when"] == now.isoformat()
        assert event.metadata["type"] == "loan_paid_off"
        assert event.metadata["nested"] == {"values": ["1.10"]}

    def test_hash_is_deterministic(self):
        now = datetime.now(timezone.utc)
        kwargs = dict(
            id="AUDIT002", created_at=now, updated_at=now,
            event_type=AuditEventType.CUSTOMER_CREATED, entity_type="customer",
            entity_id="CUST001", sequence=1, previous_hash="", current_hash="",
            metadata={"name": None}
        )
        first = AuditEvent(**kwargs)
        second = AuditEvent(**kwargs)

        assert first.calculate_hash() == second.calculate_hash()
        assert len(first.calculate_hash()) == 64

    def test_round_trip(self, audit_trail, storage):
        event = audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001", {"x": 1})
        restored = AuditEvent.from_dict(storage.load(audit_trail.table_name, event.id))

        assert restored == event
        assert restored.event_type == AuditEventType.LOAN_ORIGINATED
        assert restored.verify_hash()


class TestAuditTrail:
    """Test hash chaining"""

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.CUSTOMER_CREATED, "customer", "CUST001")
        second = audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        third = audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", "LOAN001")

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert third.previous_hash == second.current_hash
        assert [first.sequence, second.sequence, third.sequence] == [1, 2, 3]

    def test_events_for_entity(self, audit_trail):
        audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN002")
        audit_trail.log_event(AuditEventType.LOAN_PAID_OFF, "loan", "LOAN001")

        events = audit_trail.get_events_for_entity("loan", "LOAN001")
        assert [e.event_type for e in events] == [
            AuditEventType.LOAN_ORIGINATED, AuditEventType.LOAN_PAID_OFF
        ]
        assert len(audit_trail.get_all_events()) == 3

    def test_integrity_of_untouched_chain(self, audit_trail):
        for i in range(5):
            audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", "LOAN001", {"i": i})

        result = audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 5
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_empty_chain_is_valid(self, audit_trail):
        result = audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 0

    def test_tampered_metadata_detected(self, audit_trail, storage):
        audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", "LOAN001", {"amount": "100.00"})
        target = audit_trail.log_event(AuditEventType.LOAN_PAYMENT_MADE, "loan", "LOAN001", {"amount": "50.00"})

        record = storage.load(audit_trail.table_name, target.id)
        record['metadata']['amount'] = "5000.00"
        storage.save(audit_trail.table_name, target.id, record)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert [e['event_id'] for e in result['hash_errors']] == [target.id]

    def test_removed_event_breaks_chain(self, audit_trail, storage):
        audit_trail.log_event(AuditEventType.CUSTOMER_CREATED, "customer", "CUST001")
        middle = audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
        last = audit_trail.log_event(AuditEventType.LOAN_PAID_OFF, "loan", "LOAN001")

        all_data = storage.get_all_data()[audit_trail.table_name]
        storage.clear_table(audit_trail.table_name)
        for event_id, data in all_data.items():
            if event_id != middle.id:
                storage.save(audit_trail.table_name, event_id, data)

        result = audit_trail.verify_integrity()
        assert not result['valid']
        assert [b['event_id'] for b in result['chain_breaks']] == [last.id]

    def test_event_rolled_back_with_transaction(self, audit_trail, storage):
        """Events written in a failed atomic block disappear with it"""
        audit_trail.log_event(AuditEventType.CUSTOMER_CREATED, "customer", "CUST001")

        with pytest.raises(RuntimeError):
            with storage.atomic():
                audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN001")
                raise RuntimeError("boom")

        follow_up = audit_trail.log_event(AuditEventType.LOAN_ORIGINATED, "loan", "LOAN002")
        assert follow_up.sequence == 2
        assert audit_trail.verify_integrity()['valid']
