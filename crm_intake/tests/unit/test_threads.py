"""Unit tests for thread deduplication."""

from unittest.mock import MagicMock

from crm_intake.core.store import INBOUND_MESSAGES, NOTES
from crm_intake.services.threads import (
    ThreadDeduplicator,
    calculate_similarity,
    note_body_text,
    trim_thread_history,
)

PREVIOUS = (
    "We reviewed the onboarding checklist with the vendor team and agreed "
    "on milestones for the integration phase."
)
REPLY = "Sounds good, we will confirm the dates on Friday."


class TestCalculateSimilarity:
    """Tests for word-set similarity."""

    def test_identical_texts(self):
        """Test identical texts score 1.0 regardless of case."""
        assert calculate_similarity("Hello World", "hello world") == 1.0

    def test_partial_overlap(self):
        """Test Jaccard ratio of shared words."""
        assert calculate_similarity("a b c", "b c d") == 0.5

    def test_empty(self):
        """Test empty texts score 0."""
        assert calculate_similarity("", "") == 0.0


class TestNoteBodyText:
    """Tests for note text extraction."""

    def test_sender_line_removed(self):
        """Test only the leading sender paragraph is dropped."""
        note = "<p><strong>Email from</strong> Jane</p>\n<p>Body text</p>"
        assert note_body_text(note) == "Body text"

    def test_note_without_sender_line(self):
        """Test notes without a sender line are converted unchanged."""
        assert note_body_text("<p>Body text</p>") == "Body text"


class TestTrimThreadHistory:
    """Tests for history trimming."""

    def test_trims_repeated_history(self):
        """Test a known prior body at the end of a reply is cut off."""
        content = f"{REPLY}\n\n{PREVIOUS}"
        new_content, new_html = trim_thread_history(content, "", [PREVIOUS])
        assert new_content == REPLY
        assert new_html == ""

    def test_no_match_returns_input(self):
        """Test unrelated history leaves the content alone."""
        content = f"{REPLY}\n\n{PREVIOUS}"
        unrelated = "Completely different words about catering menus and seating charts for guests."
        assert trim_thread_history(content, "<p>x</p>", [unrelated]) == (content, "<p>x</p>")

    def test_short_remainder_falls_back(self):
        """Test a trim leaving under 20 characters keeps the full content."""
        content = f"Ok.\n\n{PREVIOUS}"
        assert trim_thread_history(content, "", [PREVIOUS]) == (content, "")

    def test_match_at_start_not_trimmed(self):
        """Test history at the very start is not treated as quoted history."""
        assert trim_thread_history(PREVIOUS, "", [PREVIOUS]) == (PREVIOUS, "")


class TestThreadDeduplicator:
    """Tests for store-backed thread checks."""

    def _processed_with_note(self, store, thread_id, note_html, body_text=""):
        note_id = store.insert(NOTES, {"content": note_html})
        store.insert(INBOUND_MESSAGES, {
            "thread_id": thread_id,
            "processed": True,
            "body": {"text": body_text, "html": ""},
            "linked_to": {"note_id": note_id},
        })
        return note_id

    def test_duplicate_detected(self, store):
        """Test content matching an existing thread note is a duplicate."""
        self._processed_with_note(store, "t1", f"<p><strong>Email from</strong> Jane</p>\n{PREVIOUS}")
        dedup = ThreadDeduplicator(store)
        assert dedup.is_already_processed(PREVIOUS, "t1") is True

    def test_short_duplicate_ignores_sender_line(self, store):
        """Test the note sender line does not dilute similarity for short content."""
        short = "Please confirm the final scope for the rollout today."
        self._processed_with_note(
            store, "t1", f"<p><strong>Email from</strong> Jane Doe &lt;jane@beta.com&gt;</p>\n{short}"
        )
        assert ThreadDeduplicator(store).is_already_processed(short, "t1") is True

    def test_other_thread_not_duplicate(self, store):
        """Test notes from another thread are not considered."""
        self._processed_with_note(store, "t1", PREVIOUS)
        dedup = ThreadDeduplicator(store)
        assert dedup.is_already_processed(PREVIOUS, "t2") is False

    def test_no_thread_id(self, store):
        """Test messages without a thread are never duplicates."""
        assert ThreadDeduplicator(store).is_already_processed(PREVIOUS, None) is False

    def test_more_notes_than_query_cap(self, store):
        """Test note lookups are chunked past the per-query id cap."""
        for i in range(12):
            self._processed_with_note(store, "t1", f"unrelated note number {i}")
        self._processed_with_note(store, "t1", PREVIOUS)
        assert ThreadDeduplicator(store).is_already_processed(PREVIOUS, "t1") is True

    def test_lookup_failure_is_not_duplicate(self):
        """Test store errors count as not processed."""
        store = MagicMock()
        store.query.side_effect = RuntimeError("store down")
        assert ThreadDeduplicator(store).is_already_processed(PREVIOUS, "t1") is False

    def test_extract_new_content(self, store):
        """Test prior processed bodies in the thread are trimmed from a reply."""
        self._processed_with_note(store, "t1", "note", body_text=PREVIOUS)
        dedup = ThreadDeduplicator(store)
        new_content, _ = dedup.extract_new_content(f"{REPLY}\n\n{PREVIOUS}", "", "t1")
        assert new_content == REPLY
