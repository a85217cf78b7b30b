"""
Per-message audit trail.

Each processing stage appends one entry to the message's embedded trail. The
write is read-modify-write without transactional isolation: two writers racing
on the same message can drop an entry.
"""

from typing import Any

from crm_intake.core.logging import get_logger
from crm_intake.core.models import AuditEntry, AuditStatus, AuditTrail, utcnow
from crm_intake.core.store import INBOUND_MESSAGES, RecordStore

log = get_logger(__name__)


class AuditRecorder:
    """Appends audit entries to inbound message records. Never raises."""

    def __init__(self, store: RecordStore):
        self.store = store

    def record(
        self,
        message_id: str | None,
        status: AuditStatus,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        """
        Append one entry to a message's audit trail.

        Args:
            message_id: Inbound message id
            status: Stage outcome
            message: Human-readable description
            details: Structured context; None-valued keys are dropped

        Returns:
            The stored entry, or None if it could not be written
        """
        entry = AuditEntry.create(status, message, details)
        if not message_id:
            log.warning("audit_skipped_no_message_id", audit_message=message)
            return None

        try:
            record = self.store.get(INBOUND_MESSAGES, message_id)
            if record is None:
                log.warning("audit_message_not_found", message_id=message_id, audit_message=message)
                return None

            trail = AuditTrail.from_list(record.get("audit_trail"))
            trail.append(entry)
            self.store.update(INBOUND_MESSAGES, message_id, {
                "audit_trail": trail.to_list(),
                "updated_at": utcnow(),
            })
        except Exception as e:
            log.warning(
                "audit_write_failed",
                message_id=message_id,
                audit_message=message,
                error=str(e),
            )
            return None

        log.debug("audit_recorded", message_id=message_id, status=status.value, audit_message=message)
        return entry

    def info(self, message_id: str | None, message: str, details: dict[str, Any] | None = None):
        return self.record(message_id, AuditStatus.INFO, message, details)

    def success(self, message_id: str | None, message: str, details: dict[str, Any] | None = None):
        return self.record(message_id, AuditStatus.SUCCESS, message, details)

    def warning(self, message_id: str | None, message: str, details: dict[str, Any] | None = None):
        return self.record(message_id, AuditStatus.WARNING, message, details)

    def skipped(self, message_id: str | None, message: str, details: dict[str, Any] | None = None):
        return self.record(message_id, AuditStatus.SKIPPED, message, details)

    def failure(self, message_id: str | None, message: str, details: dict[str, Any] | None = None):
        return self.record(message_id, AuditStatus.FAILURE, message, details)
