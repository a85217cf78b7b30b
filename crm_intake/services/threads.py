"""
Thread deduplication.

Two jobs over a conversation thread: detect messages whose content was already
turned into a note, and trim previously seen history off a reply so only the
new text is processed.
"""

import re

from crm_intake.core.logging import get_logger
from crm_intake.core.store import INBOUND_MESSAGES, NOTES, Filter, RecordStore
from crm_intake.parsing.normalizer import (
    clean_email_content,
    clean_email_content_html,
    extract_text_from_html,
)

log = get_logger(__name__)

DUPLICATE_THRESHOLD = 0.8
SUFFIX_MATCH_THRESHOLD = 0.85
MIN_MATCH_LENGTH = 50
MIN_NEW_CONTENT_LENGTH = 20
# Only trim when the repeated history starts within the first 70% of the text
MAX_MATCH_POSITION = 0.7
HTML_CLEANUP_RATIO = 0.8
ANCHOR_LENGTH = 100

NOTE_HEADER_PREFIX = "<p><strong>Email from</strong>"
NOTE_HEADER = re.compile(r"^\s*" + re.escape(NOTE_HEADER_PREFIX) + r".*?</p>", re.DOTALL)


def calculate_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the lower-cased word sets of two texts."""
    words1 = set(text1.lower().split())
    words2 = set(text2.lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def note_body_text(content: str) -> str:
    """Plain text of a note without its leading sender line."""
    return extract_text_from_html(NOTE_HEADER.sub("", content, count=1))


def trim_thread_history(
    content: str,
    html: str,
    previous_contents: list[str],
) -> tuple[str, str]:
    """
    Cut repeated thread history off the end of a reply.

    Args:
        content: Cleaned plain text of the new message
        html: Cleaned HTML of the new message (may be empty)
        previous_contents: Cleaned plain text of earlier processed messages

    Returns:
        (new text, new HTML). The inputs are returned unchanged when no prior
        body matches or the trimmed text would be shorter than 20 characters.
    """
    longest = ""
    for previous in previous_contents:
        if not previous or len(content) < len(previous):
            continue
        suffix = content[len(content) - len(previous):]
        if (
            calculate_similarity(suffix, previous) > SUFFIX_MATCH_THRESHOLD
            and len(previous) > len(longest)
        ):
            longest = previous

    new_content, new_html = content, html
    if len(longest) > MIN_MATCH_LENGTH:
        anchor = longest[:ANCHOR_LENGTH]
        index = content.rfind(anchor)
        if 0 < index < len(content) * MAX_MATCH_POSITION:
            new_content = content[:index].strip()
            if html:
                new_html = _trim_html(html, anchor)

    if len(new_content) < MIN_NEW_CONTENT_LENGTH:
        return content, html
    return new_content, new_html


def _trim_html(html: str, anchor: str) -> str:
    cleaned = clean_email_content_html(html)
    if len(cleaned) < len(html) * HTML_CLEANUP_RATIO:
        return cleaned

    text = extract_text_from_html(html)
    index = text.rfind(anchor)
    if 0 < index < len(text) * MAX_MATCH_POSITION:
        # Approximate cut: same proportion of the markup as of the text
        return html[:int(len(html) * (index / len(text)))].strip()
    return html


class ThreadDeduplicator:
    """Store-backed thread checks."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _processed_in_thread(self, thread_id: str, ordered: bool = False) -> list[dict]:
        filters = [
            Filter("thread_id", "==", thread_id),
            Filter("processed", "==", True),
        ]
        if ordered:
            return self.store.query(INBOUND_MESSAGES, filters, order_by="received_at", descending=True)
        return self.store.query(INBOUND_MESSAGES, filters)

    def is_already_processed(self, content: str, thread_id: str | None) -> bool:
        """
        Check whether a note with near-identical content exists for this thread.

        Lookup failures count as "not processed".
        """
        if not thread_id or not content:
            return False

        try:
            messages = self._processed_in_thread(thread_id)
            note_ids = [
                m["linked_to"]["note_id"]
                for m in messages
                if (m.get("linked_to") or {}).get("note_id")
            ]
            if not note_ids:
                return False

            for note in self.store.get_many_chunked(NOTES, note_ids):
                note_text = note_body_text(note.get("content") or "")
                similarity = calculate_similarity(content, note_text)
                if similarity >= DUPLICATE_THRESHOLD:
                    log.info(
                        "thread_duplicate_detected",
                        thread_id=thread_id,
                        note_id=note["id"],
                        similarity=round(similarity, 3),
                    )
                    return True
        except Exception as e:
            log.error("thread_duplicate_check_failed", thread_id=thread_id, error=str(e))
            return False

        return False

    def extract_new_content(self, content: str, html: str, thread_id: str | None) -> tuple[str, str]:
        """
        Return only the new part of a threaded reply (text and HTML).

        Lookup failures return the content untouched.
        """
        if not thread_id or not content:
            return content, html

        try:
            messages = self._processed_in_thread(thread_id, ordered=True)
        except Exception as e:
            log.error("thread_history_lookup_failed", thread_id=thread_id, error=str(e))
            return content, html

        if not messages:
            return content, html

        previous_contents = []
        for message in messages:
            body = message.get("body") or {}
            raw = body.get("text") or extract_text_from_html(body.get("html") or "")
            if raw:
                previous_contents.append(clean_email_content(raw))

        cleaned = clean_email_content(content)
        new_content, new_html = trim_thread_history(cleaned, html, previous_contents)
        if new_content != cleaned:
            log.info(
                "thread_content_trimmed",
                thread_id=thread_id,
                new_length=len(new_content),
                total_length=len(cleaned),
            )
        return new_content, new_html
