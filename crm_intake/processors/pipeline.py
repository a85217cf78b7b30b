"""
Intake pipeline orchestrator.

Turns unprocessed inbound messages into organizations, deals, notes and
tasks. Per message:

    received -> skipped (testing | empty | duplicate) -> processed
    received -> routed -> deal amount -> tasks -> note -> processed
    received -> routing exhausted (left unprocessed for a later retry)

The `processed` flag is always the last write, so a message seen as processed
is never reprocessed.
"""

import argparse
import html
from dataclasses import dataclass
from typing import Any

from crm_intake.config import settings
from crm_intake.core.config_provider import ConfigProvider, ResolvedConfig
from crm_intake.core.errors import (
    MessageProcessingError,
    NoActingUserError,
    RecordNotFoundError,
)
from crm_intake.core.logging import bind_context, clear_context, configure_logging, get_logger
from crm_intake.core.models import InboundMessage, Linkage, Sender, utcnow
from crm_intake.core.store import (
    DEALS,
    INBOUND_MESSAGES,
    NOTES,
    TASKS,
    USERS,
    Filter,
    RecordStore,
    get_store,
)
from crm_intake.parsing import (
    analyze_email,
    clean_email_content,
    clean_email_content_html,
    clean_subject_line,
    extract_forwarded_info,
    extract_structured_data,
    extract_text_from_html,
    filter_internal_contacts,
    is_forwarded_to_intake,
    text_to_html,
)
from crm_intake.processors.base import BaseProcessor
from crm_intake.routing import EntityResolver, EntityRouter, RoutingContext
from crm_intake.services.audit import AuditRecorder
from crm_intake.services.threads import NOTE_HEADER_PREFIX, ThreadDeduplicator

log = get_logger(__name__)

MIN_CONTENT_LENGTH = 10
MIN_FORWARDED_CONTENT_LENGTH = 50
MAX_TASK_TITLE_LENGTH = 200


@dataclass
class PreparedContent:
    """Message text after unwrapping and normalization."""

    sender: Sender
    subject: str
    content: str
    note_html: str
    pattern_subject: str
    pattern_content: str


class MessagePipeline(BaseProcessor):
    """Processes inbound messages one at a time."""

    def __init__(
        self,
        store: RecordStore | None = None,
        config_provider: ConfigProvider | None = None,
        router: EntityRouter | None = None,
        batch_limit: int | None = None,
    ):
        self.store = store or get_store()
        self.config_provider = config_provider or ConfigProvider(self.store)
        self.audit = AuditRecorder(self.store)
        self.router = router or EntityRouter(self.audit)
        self.threads = ThreadDeduplicator(self.store)
        self.batch_limit = batch_limit or settings.batch_limit

    # --- Entry points ----------------------------------------------------

    def process(self, acting_user_id: str | None = None) -> dict:
        """Process one batch of unprocessed messages."""
        return self.process_unprocessed_batch(acting_user_id)

    def process_message(
        self,
        message: InboundMessage | str,
        acting_user_id: str,
        config: ResolvedConfig | None = None,
    ) -> bool:
        """
        Process a single inbound message.

        Args:
            message: Message (or its id) to process; state is re-read from the store
            acting_user_id: User recorded as creator of new records
            config: Resolved routing config, resolved for the user if omitted

        Returns:
            True if a note (and its organization/deal linkage) was created

        Raises:
            MessageProcessingError: On unexpected failure, after it has been
                recorded in the message's audit trail
        """
        message_id = message if isinstance(message, str) else message.id
        try:
            return self._process_message(message_id, acting_user_id, config)
        except Exception as e:
            log.error("message_process_error", message_id=message_id, error=str(e), exc_info=True)
            self.audit.failure(
                message_id,
                f"Email processing failed with error: {e}",
                {"error": str(e), "error_type": type(e).__name__},
            )
            raise MessageProcessingError(message_id, e) from e

    def process_unprocessed_batch(self, acting_user_id: str | None = None) -> dict:
        """
        Process up to batch_limit unprocessed messages, newest first.

        Returns:
            {"processed": int, "skipped": int, "errors": int}
        """
        acting_user_id = self.resolve_acting_user(acting_user_id)
        config = self.config_provider.resolve(acting_user_id)

        records = self.store.query(
            INBOUND_MESSAGES,
            [Filter("processed", "==", False)],
            order_by="received_at",
            descending=True,
            limit=self.batch_limit,
        )
        log.info("batch_starting", count=len(records), acting_user_id=acting_user_id)

        stats = {"processed": 0, "skipped": 0, "errors": 0}
        for record in records:
            try:
                bind_context(message_id=record["id"])
                if self.process_message(record["id"], acting_user_id, config):
                    stats["processed"] += 1
                else:
                    stats["skipped"] += 1
            except Exception as e:
                log.error("batch_message_failed", error=str(e))
                stats["errors"] += 1
            finally:
                clear_context()

        log.info("batch_complete", **stats)
        return stats

    def resolve_acting_user(self, acting_user_id: str | None = None) -> str:
        """Explicit user, else the configured default, else the first active admin."""
        if acting_user_id:
            return acting_user_id
        if settings.default_acting_user_id:
            return settings.default_acting_user_id

        admins = self.store.query(
            USERS,
            [Filter("role", "==", "admin"), Filter("is_active", "==", True)],
            limit=1,
        )
        if not admins:
            raise NoActingUserError("No acting user given and no active admin user found")
        return admins[0]["id"]

    # --- Single message --------------------------------------------------

    def _mark_processed(self, message_id: str, **fields: Any) -> None:
        self.store.update(INBOUND_MESSAGES, message_id, {
            **fields,
            "processed": True,
            "updated_at": utcnow(),
        })

    def _process_message(
        self,
        message_id: str | None,
        acting_user_id: str,
        config: ResolvedConfig | None,
    ) -> bool:
        record = self.store.get(INBOUND_MESSAGES, message_id) if message_id else None
        if record is None:
            raise RecordNotFoundError(INBOUND_MESSAGES, str(message_id))
        message = InboundMessage.from_record(record)

        if message.processed:
            log.info("message_already_processed", message_id=message_id)
            return False

        config = config or self.config_provider.resolve(acting_user_id)
        now = utcnow()
        self.audit.info(message_id, "Starting email processing")

        if "testing" in message.subject.lower():
            log.info("message_skipped_testing", subject=message.subject)
            self.audit.skipped(
                message_id,
                'Email skipped: subject contains "testing"',
                {"subject": message.subject},
            )
            self._mark_processed(message_id)
            return False

        prepared = self._prepare(message, config)

        if len(prepared.content.strip()) < MIN_CONTENT_LENGTH:
            log.info("message_skipped_empty", subject=message.subject)
            self.audit.skipped(
                message_id,
                "Email skipped: insufficient content after cleaning",
                {"content_length": len(prepared.content.strip())},
            )
            self._mark_processed(message_id)
            return False

        extracted = extract_structured_data(prepared.content, prepared.subject, now=now)
        filtered = filter_internal_contacts(
            extracted.contacts, config.internal_domains, config.internal_addresses
        )
        classification = analyze_email(prepared.content, prepared.subject)
        log.info(
            "message_analyzed",
            **extracted.counts(),
            filtered_internal_emails=filtered,
            sentiment=classification.sentiment.value,
            urgency=classification.urgency.value,
            category=classification.category,
        )

        if self.threads.is_already_processed(prepared.content, message.thread_id):
            self.audit.skipped(
                message_id,
                "Email skipped: content already processed in thread",
                {"thread_id": message.thread_id},
            )
            self._mark_processed(message_id)
            return False

        ctx = RoutingContext(
            sender=prepared.sender,
            subject=prepared.subject,
            content=prepared.content,
            config=config,
            pattern_subject=prepared.pattern_subject,
            pattern_content=prepared.pattern_content,
            message_id=message_id,
            now=now,
        )
        resolver = EntityResolver(self.store, config, acting_user_id, now=now)
        result = self.router.route(ctx, resolver)

        if result is None:
            self.audit.failure(
                message_id,
                "Email processing failed: could not determine organization (no routing method succeeded)",
                {"routing_confidence": 0},
            )
            self.store.update(INBOUND_MESSAGES, message_id, {
                "extracted_data": extracted.to_dict(),
                "classification": classification.to_dict(),
                "routing_confidence": 0,
                "updated_at": utcnow(),
            })
            return False

        self._update_deal_amount(message_id, result.deal_id, extracted.max_amount)
        tasks_created = self._create_tasks(
            message, result.organization_id, result.deal_id,
            extracted.action_items, classification.urgency.value, acting_user_id, config,
        )
        note_id = self._create_note(message_id, prepared, result.organization_id, result.deal_id, acting_user_id)

        linkage = Linkage(
            organization_id=result.organization_id,
            deal_id=result.deal_id,
            note_id=note_id,
        )
        self.audit.success(
            message_id,
            "Email processing completed successfully",
            {
                **linkage.to_dict(),
                "routing_method": result.method.value,
                "routing_confidence": result.confidence,
                "tasks_created": tasks_created,
                "extracted_data_counts": extracted.counts(),
            },
        )
        self._mark_processed(
            message_id,
            linked_to=linkage.to_dict(),
            extracted_data=extracted.to_dict(),
            classification=classification.to_dict(),
            routing_method=result.method.value,
            routing_confidence=result.confidence,
        )
        log.info(
            "message_processed",
            deal_id=result.deal_id,
            note_id=note_id,
            routing_method=result.method.value,
            routing_confidence=result.confidence,
        )
        return True

    def _prepare(self, message: InboundMessage, config: ResolvedConfig) -> PreparedContent:
        """Unwrap forwarded mail, clean subject and body, trim thread history."""
        sender = message.sender
        raw_text = message.body.text or extract_text_from_html(message.body.html)
        original_content = None
        original_subject = None
        wrapper = ""

        if is_forwarded_to_intake(message.subject, message.recipients, config.intake_address):
            log.info("forwarded_message_detected", subject=message.subject)
            info = extract_forwarded_info(raw_text)
            if info is not None:
                wrapper = info.wrapper_text
                if info.sender is not None:
                    sender = info.sender
                original_subject = info.original_subject
                if info.original_content and len(info.original_content) > MIN_FORWARDED_CONTENT_LENGTH:
                    original_content = info.original_content
                self.audit.info(
                    message.id,
                    "Forwarded email unwrapped",
                    {
                        "original_sender": info.sender.email if info.sender else None,
                        "original_recipients": info.recipients or None,
                        "original_content_used": original_content is not None,
                    },
                )

        subject = clean_subject_line(message.subject, config.subject_tokens)
        pattern_subject = subject
        if original_subject:
            cleaned_original = clean_subject_line(original_subject, config.subject_tokens)
            if cleaned_original:
                pattern_subject = cleaned_original

        if sender.domain in config.internal_domains or sender.email.lower() in config.internal_addresses:
            log.info("internal_sender_detected", sender=sender.email)

        content = clean_email_content(original_content or raw_text)

        # Forwarded bodies and text-only mail become escaped HTML for the note
        use_text_note = original_content is not None or not message.body.html
        note_html = "" if use_text_note else clean_email_content_html(message.body.html)

        if message.thread_id:
            content, note_html = self.threads.extract_new_content(content, note_html, message.thread_id)

        if use_text_note:
            note_html = text_to_html(content)

        pattern_content = f"{wrapper}\n\n{content}" if wrapper else content
        return PreparedContent(
            sender=sender,
            subject=subject,
            content=content,
            note_html=note_html,
            pattern_subject=pattern_subject,
            pattern_content=pattern_content,
        )

    def _update_deal_amount(self, message_id: str, deal_id: str, amount: float | None) -> None:
        if amount is None:
            return
        try:
            self.store.update(DEALS, deal_id, {"amount": amount, "updated_at": utcnow()})
        except Exception as e:
            log.warning("deal_amount_update_failed", deal_id=deal_id, error=str(e))
            self.audit.warning(message_id, "Failed to update deal amount", {"error": str(e)})
            return
        log.info("deal_amount_updated", deal_id=deal_id, amount=amount)
        self.audit.success(
            message_id,
            "Updated deal with extracted amount",
            {"deal_id": deal_id, "amount": amount},
        )

    def _create_tasks(
        self,
        message: InboundMessage,
        organization_id: str,
        deal_id: str,
        action_items: list[str],
        priority: str,
        acting_user_id: str,
        config: ResolvedConfig,
    ) -> int:
        created = 0
        for item in action_items[:config.max_tasks_per_message]:
            now = utcnow()
            try:
                self.store.insert(TASKS, {
                    "title": item[:MAX_TASK_TITLE_LENGTH],
                    "description": f"Action item from email: {message.subject}",
                    "status": "not_started",
                    "priority": priority,
                    "deal_id": deal_id,
                    "organization_id": organization_id,
                    "created_by": acting_user_id,
                    "source": "email",
                    "created_at": now,
                    "updated_at": now,
                })
            except Exception as e:
                log.warning("task_create_failed", action_item=item[:50], error=str(e))
                self.audit.warning(
                    message.id,
                    "Failed to create task from action item",
                    {"action_item": item[:50], "error": str(e)},
                )
                continue
            created += 1

        if created:
            self.audit.success(
                message.id,
                f"Created {created} task(s) from action items",
                {"tasks_created": created, "total_action_items": len(action_items)},
            )
        return created

    def _create_note(
        self,
        message_id: str,
        prepared: PreparedContent,
        organization_id: str,
        deal_id: str,
        acting_user_id: str,
    ) -> str:
        sender = prepared.sender
        identity = html.escape(sender.display, quote=False)
        if sender.name and sender.email:
            identity += f" &lt;{html.escape(sender.email, quote=False)}&gt;"
        header = f"{NOTE_HEADER_PREFIX} {identity}</p>"

        body = prepared.note_html.strip()
        content = f"{header}\n{body}" if body else header

        now = utcnow()
        note_id = self.store.insert(NOTES, {
            "content": content,
            "deal_id": deal_id,
            "organization_id": organization_id,
            "parent_type": "deal",
            "created_by": acting_user_id,
            "source": "email",
            "message_id": message_id,
            "sender": sender.to_dict(),
            "created_at": now,
            "updated_at": now,
        })
        log.info("note_created", note_id=note_id, deal_id=deal_id)
        return note_id


def main():
    """CLI entry point: process one batch of unprocessed messages."""
    parser = argparse.ArgumentParser(
        description="Route unprocessed inbound messages into organizations, deals, notes and tasks"
    )
    parser.add_argument(
        "--user",
        type=str,
        default=None,
        help="Acting user id (defaults to DEFAULT_ACTING_USER_ID, then the first active admin)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum messages to process (defaults to BATCH_LIMIT)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    configure_logging(log_level=args.log_level, json_output=settings.log_json)

    pipeline = MessagePipeline(batch_limit=args.limit)
    stats = pipeline.process_unprocessed_batch(args.user)

    log.info(
        "batch_summary",
        processed=stats["processed"],
        skipped=stats["skipped"],
        errors=stats["errors"],
    )


if __name__ == "__main__":
    main()
