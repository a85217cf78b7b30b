"""
Mail fetcher: IMAP -> record store.

Stores new messages as unprocessed InboundMessage records. Does not process
them; the pipeline picks them up on its next batch.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

from crm_intake.config import settings
from crm_intake.core.logging import get_logger
from crm_intake.core.models import InboundMessage, utcnow
from crm_intake.core.store import INBOUND_MESSAGES, Filter, RecordStore, get_store
from crm_intake.processors.base import BaseProcessor
from crm_intake.services.imap import IMAPClient

log = get_logger(__name__)


class MailFetcher(BaseProcessor):
    """Fetches mail from the intake mailbox into the store."""

    def __init__(
        self,
        store: RecordStore | None = None,
        client_factory: Callable[[], IMAPClient] = IMAPClient,
        folder: str | None = None,
    ):
        self.store = store or get_store()
        self.client_factory = client_factory
        self.folder = folder or settings.imap_folder

    def process(self, acting_user_id: str | None = None) -> dict:
        return self.fetch_and_store(since_days=settings.scheduler_fetch_days)

    def exists(self, provider_message_id: str) -> bool:
        return bool(self.store.query(
            INBOUND_MESSAGES,
            [Filter("provider_message_id", "==", provider_message_id)],
            limit=1,
        ))

    def store_message(self, message: InboundMessage) -> str | None:
        """Insert a message unless one with the same provider id exists."""
        if self.exists(message.provider_message_id):
            return None
        now = utcnow()
        message.processed = False
        message.created_at = now
        message.updated_at = now
        message_id = self.store.insert(INBOUND_MESSAGES, message.to_record())
        log.info(
            "message_stored",
            message_id=message_id,
            provider_message_id=message.provider_message_id,
            subject=message.subject[:80],
        )
        return message_id

    def fetch_and_store(self, since_days: int = 7, limit: int | None = None) -> dict:
        """
        Fetch messages from the last N days and store the new ones.

        Returns:
            {"fetched": int, "stored": int, "skipped": int, "errors": int}
        """
        stats = {"fetched": 0, "stored": 0, "skipped": 0, "errors": 0}
        since_date = datetime.now(timezone.utc) - timedelta(days=since_days)

        with self.client_factory() as client:
            for message in client.fetch_messages(self.folder, since_date=since_date, limit=limit):
                stats["fetched"] += 1
                try:
                    if self.store_message(message):
                        stats["stored"] += 1
                    else:
                        stats["skipped"] += 1
                except Exception as e:
                    log.error(
                        "message_store_error",
                        provider_message_id=message.provider_message_id,
                        error=str(e),
                    )
                    stats["errors"] += 1

        log.info("fetch_complete", **stats)
        return stats
