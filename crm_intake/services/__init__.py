"""Store-backed services: audit trail, thread deduplication, mail fetch source."""

from .audit import AuditRecorder
from .threads import ThreadDeduplicator, calculate_similarity, trim_thread_history
from .imap import IMAPClient, parse_raw_message

__all__ = [
    "AuditRecorder",
    "ThreadDeduplicator",
    "calculate_similarity",
    "trim_thread_history",
    "IMAPClient",
    "parse_raw_message",
]
