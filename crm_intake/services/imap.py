"""
IMAP mail fetch source.

Parses raw RFC 822 messages into unprocessed InboundMessage records.
"""

import imaplib
from datetime import datetime
from email import message_from_bytes
from email.header import decode_header as email_decode_header
from email.message import Message
from email.utils import getaddresses, parsedate_to_datetime
from typing import Iterator

from crm_intake.config import settings
from crm_intake.core.logging import get_logger
from crm_intake.core.models import InboundMessage, MessageBody, Sender

log = get_logger(__name__)


def decode_mime_header(header: str | None) -> str:
    """Decode a MIME-encoded header ('=?UTF-8?B?...?=') to plain text."""
    if not header:
        return ""
    decoded_parts = []
    for part, charset in email_decode_header(header):
        if isinstance(part, bytes):
            decoded_parts.append(part.decode(charset or "utf-8", errors="replace"))
        else:
            decoded_parts.append(part)
    return "".join(decoded_parts).replace("\r\n", "").replace("\n", "")


def thread_id_for(msg: Message) -> str | None:
    """Root of the reply chain: first References id, else In-Reply-To, else own id."""
    references = (msg.get("References") or "").split()
    if references:
        return references[0].strip()
    in_reply_to = (msg.get("In-Reply-To") or "").strip()
    if in_reply_to:
        return in_reply_to
    return (msg.get("Message-ID") or "").strip() or None


def get_body(msg: Message) -> tuple[str, str]:
    """Extract plain text and HTML body from a message."""
    text_plain = ""
    text_html = ""

    parts = msg.walk() if msg.is_multipart() else [msg]
    for part in parts:
        if "attachment" in (part.get("Content-Disposition") or ""):
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/plain", "text/html"):
            continue
        payload = part.get_payload(decode=True)
        if not payload:
            continue

        charset = part.get_content_charset() or "utf-8"
        try:
            text = payload.decode(charset, errors="ignore")
        except LookupError:
            text = payload.decode("utf-8", errors="ignore")

        if content_type == "text/plain":
            text_plain += text
        else:
            text_html += text

    return text_plain, text_html


def parse_message(msg: Message) -> InboundMessage | None:
    """Convert a parsed email.message.Message into an InboundMessage."""
    message_id = (msg.get("Message-ID") or "").strip()
    if not message_id:
        return None

    received_at = None
    date_str = msg.get("Date")
    if date_str:
        try:
            received_at = parsedate_to_datetime(date_str)
        except (TypeError, ValueError):
            log.warning("imap_date_unparsed", message_id=message_id, date=date_str)

    body_plain, body_html = get_body(msg)
    recipients = [addr for _, addr in getaddresses([decode_mime_header(msg.get("To"))]) if addr]
    cc = [addr for _, addr in getaddresses([decode_mime_header(msg.get("Cc"))]) if addr]

    return InboundMessage(
        provider_message_id=message_id,
        thread_id=thread_id_for(msg),
        sender=Sender.from_header(decode_mime_header(msg.get("From"))),
        recipients=recipients,
        cc=cc,
        subject=decode_mime_header(msg.get("Subject")),
        body=MessageBody(text=body_plain, html=body_html),
        received_at=received_at,
    )


def parse_raw_message(raw: bytes) -> InboundMessage | None:
    return parse_message(message_from_bytes(raw))


class IMAPClient:
    """IMAP client for the intake mailbox."""

    def __init__(
        self,
        host: str | None = None,
        email: str | None = None,
        password: str | None = None,
    ):
        self.host = host or settings.imap_host
        self.email = email or settings.imap_email
        self.password = password or settings.imap_password
        self._conn: imaplib.IMAP4_SSL | None = None

    def connect(self) -> None:
        """Connect and authenticate to IMAP server."""
        log.info("imap_connecting", host=self.host, email=self.email)
        conn = imaplib.IMAP4_SSL(self.host)
        try:
            conn.login(self.email, self.password)
        except imaplib.IMAP4.error:
            conn.shutdown()
            raise
        self._conn = conn
        log.info("imap_connected")

    def disconnect(self) -> None:
        """Close IMAP connection."""
        if self._conn:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                log.warning("imap_logout_failed", error=str(e))
            self._conn = None
            log.info("imap_disconnected")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    def fetch_messages(
        self,
        folder: str = "INBOX",
        since_date: datetime | None = None,
        limit: int | None = None,
    ) -> Iterator[InboundMessage]:
        """
        Fetch messages from a folder.

        Args:
            folder: IMAP folder name
            since_date: Only fetch messages after this date
            limit: Maximum number of messages to fetch (most recent)

        Yields:
            InboundMessage objects with processed=False
        """
        if not self._conn:
            raise RuntimeError("Not connected to IMAP server")

        self._conn.select(folder)

        if since_date:
            search_criteria = f'(SINCE {since_date.strftime("%d-%b-%Y")})'
        else:
            search_criteria = "ALL"

        _, message_numbers = self._conn.search(None, search_criteria)
        msg_nums = message_numbers[0].split()
        if limit:
            msg_nums = msg_nums[-limit:]

        log.info("imap_fetching", folder=folder, count=len(msg_nums))

        for num in msg_nums:
            try:
                _, msg_data = self._conn.fetch(num, "(RFC822)")
                if not msg_data or not msg_data[0]:
                    continue
                message = parse_raw_message(msg_data[0][1])
                if message:
                    yield message
            except Exception as e:
                log.error("imap_fetch_error", error=str(e), message_num=num.decode())
