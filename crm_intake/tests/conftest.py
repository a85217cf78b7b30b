"""
Shared pytest fixtures for crm_intake tests.
"""

import pytest
from datetime import datetime, timezone

from crm_intake.config import settings
from crm_intake.core.config_provider import ResolvedConfig
from crm_intake.core.models import InboundMessage, MessageBody, Sender
from crm_intake.core.store import INBOUND_MESSAGES, USERS, MemoryRecordStore
from crm_intake.processors.pipeline import MessagePipeline


ACTING_USER = "user-1"
NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def no_default_acting_user(monkeypatch):
    """Keep environment-provided acting users out of the tests."""
    monkeypatch.setattr(settings, "default_acting_user_id", None)


@pytest.fixture
def store() -> MemoryRecordStore:
    """Empty in-memory record store."""
    return MemoryRecordStore()


@pytest.fixture
def config() -> ResolvedConfig:
    """Default routing config (pattern routing only)."""
    return ResolvedConfig()


@pytest.fixture
def all_methods_config() -> ResolvedConfig:
    """Routing config with every strategy enabled."""
    return ResolvedConfig(routing_methods=("pattern", "metadata", "context"))


@pytest.fixture
def admin_user(store) -> str:
    """Active admin user used as the batch acting user."""
    return store.insert(USERS, {"id": "admin-1", "role": "admin", "is_active": True})


@pytest.fixture
def make_message(store):
    """Factory that stores an unprocessed inbound message and returns its id."""

    def _make(
        subject: str,
        text: str = "",
        html: str = "",
        sender: str = "Bob Smith <bob@acme.com>",
        recipients: list[str] | None = None,
        thread_id: str | None = None,
        received_at: datetime = NOW,
        processed: bool = False,
    ) -> str:
        message = InboundMessage(
            provider_message_id=f"<{subject[:20]}-{received_at.isoformat()}@mail.example.com>",
            thread_id=thread_id,
            sender=Sender.from_header(sender),
            recipients=recipients or ["sales@infoglobaltech.com"],
            subject=subject,
            body=MessageBody(text=text, html=html),
            received_at=received_at,
            processed=processed,
        )
        return store.insert(INBOUND_MESSAGES, message.to_record())

    return _make


@pytest.fixture
def pipeline(store) -> MessagePipeline:
    """Pipeline wired to the in-memory store."""
    return MessagePipeline(store=store)


@pytest.fixture
def sample_forwarded_body() -> str:
    """Body of a client message forwarded into the intake mailbox."""
    return """Company: Beta LLC

---------- Forwarded message ---------
From: Jane Doe <jane@beta.com>
Date: Mon, 1 Jun 2026 at 10:00
Subject: Proposal for Beta LLC
To: Alice Nguyen <alice@infoglobaltech.com>

Hi Alice,

We would like to receive a proposal for the new platform rollout and the
integration work we discussed during our call last week.
"""
