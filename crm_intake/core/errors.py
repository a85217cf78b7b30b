"""Exception types raised by the intake pipeline."""


class CRMIntakeError(Exception):
    """Base class for pipeline errors."""


class RecordNotFoundError(CRMIntakeError):
    """A record that must exist is missing from the store."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class NoActingUserError(CRMIntakeError):
    """Batch processing started without an acting user and no admin exists."""


class MessageProcessingError(CRMIntakeError):
    """Unexpected failure while processing one message (already audited)."""

    def __init__(self, message_id: str | None, error: Exception):
        super().__init__(f"Processing failed for message {message_id}: {error}")
        self.message_id = message_id
