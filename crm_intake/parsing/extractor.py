"""
Rule-based structured data extraction.

Each category is an ordered list of (pattern, handler) pairs scanned over
"subject\\ncontent". Categories are extracted independently; duplicates are
removed within a category only.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from dateutil import parser as date_parser

from crm_intake.core.logging import get_logger
from crm_intake.core.models import ContactBundle, ExtractedData

log = get_logger(__name__)

_MONTHS = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)"
_MONTH_WORD = re.compile(rf"\b{_MONTHS}[a-z]*\b", re.I)


# --- Dates ---------------------------------------------------------------

def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_date(text: str, now: datetime, fuzzy: bool = False) -> datetime | None:
    default = now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    try:
        return _as_utc(date_parser.parse(text, default=default, fuzzy=fuzzy))
    except (ValueError, OverflowError):
        return None


def _date_from_match(match: re.Match, now: datetime) -> datetime | None:
    return _parse_date(match.group(0), now)


def _date_from_phrase(match: re.Match, now: datetime) -> datetime | None:
    phrase = match.group(1).strip().rstrip(".")
    if not (re.search(r"\d", phrase) or _MONTH_WORD.search(phrase)):
        return None
    return _parse_date(phrase, now, fuzzy=True)


def _date_from_relative(match: re.Match, now: datetime) -> datetime | None:
    if match.group(0).lower() == "today":
        return now
    return now + timedelta(days=1)


DatePattern = tuple[re.Pattern, Callable[[re.Match, datetime], datetime | None]]

DATE_PATTERNS: tuple[DatePattern, ...] = (
    (re.compile(r"\b\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"), _date_from_match),
    (re.compile(r"\b\d{4}[/\-]\d{1,2}[/\-]\d{1,2}\b"), _date_from_match),
    (re.compile(rf"\b{_MONTHS}[a-z]*\s+\d{{1,2}}(?:,?\s+\d{{4}})?\b", re.I), _date_from_match),
    (
        re.compile(r"\b(?:deadline|due date|meeting|follow up|by|before)\s*:?\s+([^,\n]+)", re.I),
        _date_from_phrase,
    ),
    (re.compile(r"\b(?:today|tomorrow)\b", re.I), _date_from_relative),
)


def extract_dates(text: str, now: datetime | None = None) -> list[datetime]:
    """Recognized dates in scan order, unparseable candidates dropped."""
    now = _as_utc(now or datetime.now(timezone.utc))
    dates: list[datetime] = []
    spans: list[tuple[int, int]] = []

    for pattern, handler in DATE_PATTERNS:
        for match in pattern.finditer(text):
            group = 1 if pattern.groups else 0
            start, end = match.span(group)
            if any(start < s_end and s_start < end for s_start, s_end in spans):
                continue
            value = handler(match, now)
            if value is None:
                continue
            spans.append((start, end))
            if value not in dates:
                dates.append(value)
    return dates


# --- Amounts -------------------------------------------------------------

AMOUNT_PATTERNS = (
    re.compile(r"\$[\d,]+(?:\.\d{2})?"),
    re.compile(r"\b\d{1,3}(?:,\d{3})*(?:\.\d{2})?\s*(?:USD|dollars?)\b", re.I),
    re.compile(
        r"\b(?:budget|amount|value|deal|contract|price|cost)\s*[:\-]?\s*\$?[\d,]+(?:\.\d{2})?",
        re.I,
    ),
)


def _parse_amount(raw: str) -> float | None:
    digits = re.sub(r"[^0-9.]", "", raw)
    try:
        amount = float(digits)
    except ValueError:
        return None
    return amount if amount > 0 else None


def extract_amounts(text: str) -> list[float]:
    amounts: list[float] = []
    for pattern in AMOUNT_PATTERNS:
        for match in pattern.finditer(text):
            amount = _parse_amount(match.group(0))
            if amount is not None and amount not in amounts:
                amounts.append(amount)
    return amounts


# --- Action items --------------------------------------------------------

ACTION_PATTERNS = (
    re.compile(r"\b(?:Action Item|Action|TODO|To Do|Task|Follow up|Follow-up)[\s:]+([^\n]+)", re.I),
    re.compile(r"\b(?:Please|Kindly|Need to|Should|Must)\s+([^.\n]+)", re.I),
    re.compile(r"\b(?:Reminder|Remember to)\s+([^.\n]+)", re.I),
)

MIN_ACTION_ITEM_LENGTH = 6


def extract_action_items(text: str) -> list[str]:
    items: list[str] = []
    for pattern in ACTION_PATTERNS:
        for match in pattern.finditer(text):
            item = match.group(1).strip()
            if len(item) >= MIN_ACTION_ITEM_LENGTH and item not in items:
                items.append(item)
    return items


# --- Contacts ------------------------------------------------------------

EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

PHONE_PATTERNS = (
    re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    re.compile(r"(?<!\w)\(\d{3}\)\s*\d{3}[-.]?\d{4}\b"),
    re.compile(r"(?<![\w+])\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}\b"),
)

NAME_PATTERN = re.compile(r"\b[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)+\b")

NAME_DENYLIST = frozenset(
    word.lower()
    for word in (
        "Best", "Regards", "Sincerely", "Thanks", "Thank", "Hello", "Hi", "Dear",
        "Subject", "From", "To", "Cc", "Bcc", "Account", "Company", "Client",
        "Customer", "Opportunity", "Deal", "Project", "Engagement", "Lead",
        "Action", "Todo", "Task", "Follow", "Meeting", "Deadline", "Due", "Date",
        "Amount", "Budget", "Value", "Price", "Cost", "Contract", "Please",
    )
)


def extract_emails(text: str) -> list[str]:
    """Addresses in original case, de-duplicated case-insensitively."""
    emails: list[str] = []
    seen: set[str] = set()
    for match in EMAIL_PATTERN.finditer(text):
        address = match.group(0)
        if address.lower() not in seen:
            seen.add(address.lower())
            emails.append(address)
    return emails


def extract_phones(text: str) -> list[str]:
    phones: list[str] = []
    for pattern in PHONE_PATTERNS:
        for match in pattern.finditer(text):
            phone = match.group(0).strip()
            if phone not in phones:
                phones.append(phone)
    return phones


def _clean_name(candidate: str) -> str | None:
    words = candidate.split()
    while words and words[0].lower() in NAME_DENYLIST:
        words.pop(0)
    while words and words[-1].lower() in NAME_DENYLIST:
        words.pop()
    if len(words) < 2 or any(w.lower() in NAME_DENYLIST for w in words):
        return None
    name = " ".join(words)
    return name if len(name) > 3 else None


def extract_names(text: str) -> list[str]:
    names: list[str] = []
    for match in NAME_PATTERN.finditer(text):
        name = _clean_name(match.group(0))
        if name and name not in names:
            names.append(name)
    return names


def extract_structured_data(
    content: str | None,
    subject: str | None = None,
    now: datetime | None = None,
) -> ExtractedData:
    """
    Pull dates, amounts, action items and contacts out of a message.

    Args:
        content: Normalized message text
        subject: Cleaned subject line
        now: Reference time for "today"/"tomorrow" and year-less dates

    Returns:
        ExtractedData snapshot
    """
    text = f"{subject or ''}\n{content or ''}"
    return ExtractedData(
        dates=extract_dates(text, now),
        amounts=extract_amounts(text),
        action_items=extract_action_items(text),
        contacts=ContactBundle(
            emails=extract_emails(text),
            phones=extract_phones(text),
            names=extract_names(text),
        ),
    )


def filter_internal_contacts(
    contacts: ContactBundle,
    internal_domains: Iterable[str],
    internal_addresses: Iterable[str],
) -> int:
    """
    Drop the organization's own staff addresses from a contact bundle in place.

    Returns:
        Number of addresses removed
    """
    domains = {d.strip().lower() for d in internal_domains}
    addresses = {a.strip().lower() for a in internal_addresses}

    kept: list[str] = []
    for address in contacts.emails:
        lowered = address.strip().lower()
        _, _, domain = lowered.partition("@")
        if lowered in addresses or domain in domains:
            log.debug("internal_contact_filtered", email=address)
            continue
        kept.append(address)

    removed = len(contacts.emails) - len(kept)
    contacts.emails = kept
    return removed
