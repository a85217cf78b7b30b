"""Unit tests for mail parsing and the fetcher."""

from datetime import datetime, timezone

from crm_intake.core.models import InboundMessage, MessageBody, Sender
from crm_intake.core.store import INBOUND_MESSAGES
from crm_intake.processors.fetch import MailFetcher
from crm_intake.services.imap import decode_mime_header, parse_raw_message

RAW_MESSAGE = b"""From: =?UTF-8?B?SmFuZSBEb2U=?= <jane@beta.com>
To: Sales <sales@infoglobaltech.com>, ops@infoglobaltech.com
Cc: legal@beta.com
Subject: Re: Proposal for Beta LLC
Date: Mon, 01 Jun 2026 10:00:00 +0000
Message-ID: <reply-2@beta.com>
In-Reply-To: <reply-1@beta.com>
References: <root@beta.com> <reply-1@beta.com>
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="XYZ"

--XYZ
Content-Type: text/plain; charset="utf-8"

Plain body
--XYZ
Content-Type: text/html; charset="utf-8"

<p>HTML body</p>
--XYZ--
"""


class FakeClient:
    """Stands in for IMAPClient."""

    def __init__(self, messages):
        self.messages = messages
        self.entered = False

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def fetch_messages(self, folder, since_date=None, limit=None):
        yield from self.messages


class TestParseRawMessage:
    """Tests for RFC 822 parsing."""

    def test_headers_and_bodies(self):
        """Test sender, recipients, thread root and both bodies are parsed."""
        message = parse_raw_message(RAW_MESSAGE)

        assert message.provider_message_id == "<reply-2@beta.com>"
        assert message.thread_id == "<root@beta.com>"
        assert message.sender == Sender(email="jane@beta.com", name="Jane Doe")
        assert message.recipients == ["sales@infoglobaltech.com", "ops@infoglobaltech.com"]
        assert message.cc == ["legal@beta.com"]
        assert message.subject == "Re: Proposal for Beta LLC"
        assert message.received_at == datetime(2026, 6, 1, 10, 0, tzinfo=timezone.utc)
        assert message.body.text.strip() == "Plain body"
        assert message.body.html.strip() == "<p>HTML body</p>"
        assert message.processed is False

    def test_message_without_id_ignored(self):
        """Test messages without a Message-ID are skipped."""
        assert parse_raw_message(b"Subject: hi\n\nbody") is None

    def test_decode_mime_header(self):
        """Test encoded words are decoded."""
        assert decode_mime_header("=?UTF-8?B?SmFuZSBEb2U=?=") == "Jane Doe"
        assert decode_mime_header(None) == ""


class TestMailFetcher:
    """Tests for MailFetcher."""

    def _message(self, provider_id):
        return InboundMessage(
            provider_message_id=provider_id,
            sender=Sender(email="jane@beta.com"),
            subject="Hello",
            body=MessageBody(text="Hi"),
        )

    def test_stores_new_messages_once(self, store):
        """Test messages already in the store are skipped."""
        client = FakeClient([self._message("<a@x>"), self._message("<b@x>"), self._message("<a@x>")])
        fetcher = MailFetcher(store=store, client_factory=lambda: client)

        stats = fetcher.fetch_and_store(since_days=3)

        assert client.entered is True
        assert stats == {"fetched": 3, "stored": 2, "skipped": 1, "errors": 0}
        records = store.all(INBOUND_MESSAGES)
        assert sorted(r["provider_message_id"] for r in records) == ["<a@x>", "<b@x>"]
        assert all(r["processed"] is False for r in records)
