"""
Keyword-based email classification.

Derives sentiment, urgency and a topical category from message text. Pure
functions; no model calls.
"""

import re

from crm_intake.core.models import Classification, Sentiment, Urgency

POSITIVE_WORDS = (
    "thank", "thanks", "appreciate", "great", "excellent", "wonderful",
    "pleased", "happy", "excited", "looking forward", "glad", "delighted",
)
NEGATIVE_WORDS = (
    "sorry", "apologize", "disappointed", "concerned", "worried", "unhappy",
    "frustrated", "problem", "issue", "error", "failed", "unable",
)

URGENCY_KEYWORDS: dict[Urgency, tuple[str, ...]] = {
    Urgency.HIGH: (
        "urgent", "asap", "as soon as possible", "immediately", "emergency",
        "critical", "important", "deadline", "due today", "today",
    ),
    Urgency.MEDIUM: (
        "soon", "quickly", "priority", "important", "please respond", "follow up",
    ),
    Urgency.LOW: ("when convenient", "no rush", "whenever", "at your convenience"),
}

# First match wins
CATEGORY_PATTERNS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"inquiry|question|ask|information|request"), "Inquiry"),
    (re.compile(r"proposal|quote|estimate|pricing|bid"), "Proposal"),
    (re.compile(r"follow.?up|following|checking|status"), "Follow-up"),
    (re.compile(r"complaint|issue|problem|error|concern"), "Complaint"),
    (re.compile(r"support|help|assistance|troubleshoot"), "Support"),
    (re.compile(r"meeting|call|schedule|appointment"), "Meeting"),
    (re.compile(r"order|purchase|buy|transaction"), "Order"),
    (re.compile(r"thank|appreciation|gratitude"), "Thank You"),
)

DEFAULT_CATEGORY = "General"


def detect_sentiment(text: str) -> Sentiment:
    positive = sum(1 for word in POSITIVE_WORDS if word in text)
    negative = sum(1 for word in NEGATIVE_WORDS if word in text)
    if positive > negative:
        return Sentiment.POSITIVE
    if negative > positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def detect_urgency(text: str) -> Urgency:
    # Low is the fallback whether or not a low-tier keyword is present
    for tier in (Urgency.HIGH, Urgency.MEDIUM):
        if any(keyword in text for keyword in URGENCY_KEYWORDS[tier]):
            return tier
    return Urgency.LOW


def detect_category(text: str) -> str:
    for pattern, category in CATEGORY_PATTERNS:
        if pattern.search(text):
            return category
    return DEFAULT_CATEGORY


def analyze_email(content: str | None, subject: str | None = None) -> Classification:
    """Classify a message from its subject and normalized content."""
    text = f"{subject or ''}\n{content or ''}".lower()
    return Classification(
        sentiment=detect_sentiment(text),
        urgency=detect_urgency(text),
        category=detect_category(text),
    )
