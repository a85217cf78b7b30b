"""Unit tests for core models and the audit recorder."""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from crm_intake.core.models import (
    AuditEntry,
    AuditStatus,
    AuditTrail,
    Classification,
    ExtractedData,
    InboundMessage,
    Linkage,
    MessageBody,
    RoutingMethod,
    Sender,
    Urgency,
)
from crm_intake.core.store import INBOUND_MESSAGES
from crm_intake.services.audit import AuditRecorder


class TestSender:
    """Tests for Sender model."""

    def test_from_header_with_name(self):
        """Test parsing 'Name <email>' headers."""
        sender = Sender.from_header("Jane Doe <jane@Beta.com>")
        assert sender.name == "Jane Doe"
        assert sender.email == "jane@Beta.com"
        assert sender.domain == "beta.com"

    def test_from_header_bare_address(self):
        """Test a bare address has no name and displays the address."""
        sender = Sender.from_header("jane@beta.com")
        assert sender.name is None
        assert sender.display == "jane@beta.com"

    def test_empty(self):
        """Test empty header gives an empty sender."""
        sender = Sender.from_header("")
        assert sender.email == ""
        assert sender.domain == ""
        assert sender.display == "Unknown"


class TestInboundMessage:
    """Tests for InboundMessage model."""

    def test_record_round_trip(self):
        """Test a message survives conversion to a store document and back."""
        trail = AuditTrail()
        trail.append(AuditEntry.create(AuditStatus.INFO, "Starting email processing"))
        message = InboundMessage(
            id="m1",
            provider_message_id="<abc@mail.example.com>",
            thread_id="<root@mail.example.com>",
            sender=Sender(email="jane@beta.com", name="Jane Doe"),
            recipients=["crm@infogloballink.com"],
            subject="Fw: Proposal",
            body=MessageBody(text="Hello", html="<p>Hello</p>"),
            received_at=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
            processed=True,
            linked_to=Linkage(organization_id="o1", deal_id="d1", note_id="n1"),
            extracted_data=ExtractedData(amounts=[5000.0], action_items=["send it over"]),
            classification=Classification(urgency=Urgency.HIGH, category="Proposal"),
            routing_method=RoutingMethod.PATTERN,
            routing_confidence=0.9,
            audit_trail=trail,
        )
        record = message.to_record()
        assert "id" not in record

        restored = InboundMessage.from_record({**record, "id": "m1"})
        assert restored.sender == message.sender
        assert restored.linked_to == message.linked_to
        assert restored.extracted_data.amounts == [5000.0]
        assert restored.classification == message.classification
        assert restored.routing_method == RoutingMethod.PATTERN
        assert len(restored.audit_trail) == 1

    def test_from_record_with_iso_strings(self):
        """Test timestamps stored as ISO strings are parsed."""
        message = InboundMessage.from_record({
            "id": "m1",
            "received_at": "2026-03-01T12:00:00Z",
            "audit_trail": [{"timestamp": "2026-03-01T12:00:01+00:00", "status": "success", "message": "ok"}],
        })
        assert message.received_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert message.audit_trail.entries[0].status == AuditStatus.SUCCESS
        assert message.processed is False
        assert message.linked_to is None


class TestAuditTrail:
    """Tests for AuditEntry and AuditTrail."""

    def test_create_drops_none_details(self):
        """Test None-valued detail keys are not stored."""
        entry = AuditEntry.create(AuditStatus.INFO, "x", {"a": 1, "b": None})
        assert entry.details == {"a": 1}
        assert AuditEntry.create(AuditStatus.INFO, "x", {"b": None}).details is None

    def test_entries_are_immutable(self):
        """Test entries cannot be changed once created."""
        entry = AuditEntry.create(AuditStatus.INFO, "x")
        with pytest.raises(AttributeError):
            entry.message = "changed"

    def test_trail_keeps_append_order(self):
        """Test entries are returned in append order and filtered by status."""
        trail = AuditTrail()
        trail.append(AuditEntry.create(AuditStatus.INFO, "first"))
        trail.append(AuditEntry.create(AuditStatus.SKIPPED, "second"))
        assert [e.message for e in trail] == ["first", "second"]
        assert [e.message for e in trail.with_status(AuditStatus.SKIPPED)] == ["second"]
        assert isinstance(trail.entries, tuple)


class TestAuditRecorder:
    """Tests for AuditRecorder."""

    def test_record_appends(self, store):
        """Test entries are appended to the message document in order."""
        message_id = store.insert(INBOUND_MESSAGES, {"audit_trail": []})
        recorder = AuditRecorder(store)

        recorder.info(message_id, "Starting email processing")
        recorder.success(message_id, "Done", {"note_id": "n1", "deal_id": None})

        trail = store.get(INBOUND_MESSAGES, message_id)["audit_trail"]
        assert [e["status"] for e in trail] == ["info", "success"]
        assert trail[1]["details"] == {"note_id": "n1"}

    def test_missing_message(self, store):
        """Test recording against an unknown message returns None."""
        assert AuditRecorder(store).info("missing", "x") is None
        assert AuditRecorder(store).info(None, "x") is None

    def test_store_failure_does_not_raise(self):
        """Test write errors are logged and swallowed."""
        broken = MagicMock()
        broken.get.return_value = {"id": "m1", "audit_trail": []}
        broken.update.side_effect = RuntimeError("store down")
        assert AuditRecorder(broken).failure("m1", "x") is None
