"""
Forwarded-message unwrapping.

Staff forward client mail into the shared intake mailbox. The useful sender,
recipients and body are then buried inside the forwarding wrapper; this module
detects such messages and recovers the original participants and content.
"""

import re
from dataclasses import dataclass, field

from crm_intake.core.logging import get_logger
from crm_intake.core.models import Sender

log = get_logger(__name__)

FORWARD_SEPARATORS = (
    re.compile(r"-{2,}\s*Original Message\s*-{2,}", re.I),
    re.compile(r"-{2,}\s*Forwarded message\s*-{2,}", re.I),
    re.compile(r"From:\s", re.I),
    re.compile(r"^On .* wrote:", re.M),
)

_FROM_PATTERNS = (
    re.compile(r"From:\s*(.+?)(?:\r?\n|$)", re.I),
    re.compile(r"^From:\s*(.+?)$", re.I | re.M),
    re.compile(r"From\s+(.+?)(?:\r?\n|$)", re.I),
)
_TO_PATTERNS = (
    re.compile(r"To:\s*(.+?)(?:\r?\n|$)", re.I),
    re.compile(r"^To:\s*(.+?)$", re.I | re.M),
    re.compile(r"To\s+(.+?)(?:\r?\n|$)", re.I),
)
_NAME_AND_ADDRESS = re.compile(r"(.+?)\s*<(.+?)>")
EMAIL_ADDRESS = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_SUBJECT_LINE = re.compile(r"^Subject:[ \t]*(.+?)[ \t]*$", re.I | re.M)

# Body starts after the last header (Subject/Date) and a blank line
_BODY_START = re.compile(r"^(?:Subject|Date):[^\n]*\n[ \t]*\n", re.I | re.M)
_HEADER_LINE = re.compile(r"^(?:From|To|Cc|Sent|Subject|Date):.*(?:\n|$)", re.I | re.M)
_SEPARATOR_LINE = re.compile(r"^-{2,}\s*(?:Original|Forwarded) Message\s*-{2,}.*(?:\n|$)", re.I | re.M)


@dataclass
class ForwardedInfo:
    """What could be recovered from a forwarded message."""

    sender: Sender | None = None
    recipients: list[str] = field(default_factory=list)
    original_subject: str | None = None
    original_content: str | None = None
    # Text the forwarder wrote above the forwarded section
    wrapper_text: str = ""


def is_forwarded_to_intake(subject: str | None, recipients: list[str], intake_address: str) -> bool:
    """
    Check whether a message was forwarded into the intake mailbox.

    The subject must start with "fw:" and the only recipient must be the
    intake address (exactly, or by local part plus domain, or bare local part).
    """
    if not (subject or "").strip().lower().startswith("fw:"):
        return False
    if len(recipients) != 1:
        return False

    recipient = (recipients[0] or "").strip().lower()
    intake = intake_address.strip().lower()
    local_part, _, domain = intake.partition("@")
    domain_label = domain.split(".")[0] if domain else ""

    if recipient == intake:
        return True
    if local_part and domain_label and local_part in recipient and domain_label in recipient:
        return True
    return recipient == local_part


def find_forwarded_section(content: str) -> int | None:
    """Index of the earliest forward separator in the body, or None."""
    positions = [m.start() for m in (p.search(content) for p in FORWARD_SEPARATORS) if m]
    return min(positions) if positions else None


def _first_match(patterns: tuple[re.Pattern, ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _parse_sender(line: str) -> Sender | None:
    match = _NAME_AND_ADDRESS.search(line)
    if match:
        return Sender(
            email=match.group(2).strip(),
            name=match.group(1).replace('"', "").strip() or None,
        )
    address = EMAIL_ADDRESS.search(line)
    if address:
        return Sender(email=address.group(0))
    return None


def _original_body(section: str) -> str | None:
    matches = list(_BODY_START.finditer(section))
    if matches:
        return section[matches[0].end():].strip() or None

    stripped = _SEPARATOR_LINE.sub("", section)
    stripped = _HEADER_LINE.sub("", stripped).strip()
    return stripped or None


def extract_forwarded_info(content: str | None) -> ForwardedInfo | None:
    """
    Recover the original participants and body from a forwarded message.

    Returns:
        ForwardedInfo, or None when neither a From nor a To could be found
    """
    if not content:
        return None

    start = find_forwarded_section(content)
    if start is None:
        section, wrapper = content, ""
    else:
        section, wrapper = content[start:], content[:start].strip()

    info = ForwardedInfo(wrapper_text=wrapper)

    from_line = _first_match(_FROM_PATTERNS, section)
    if from_line:
        info.sender = _parse_sender(from_line)
        if info.sender is None:
            log.warning("forwarded_from_unparsed", from_line=from_line[:100])

    to_line = _first_match(_TO_PATTERNS, section)
    if to_line:
        info.recipients = EMAIL_ADDRESS.findall(to_line)

    subject = _SUBJECT_LINE.search(section)
    if subject:
        info.original_subject = subject.group(1)

    info.original_content = _original_body(section)

    if info.sender is None and not info.recipients:
        log.warning("forwarded_info_not_found")
        return None

    log.info(
        "forwarded_info_extracted",
        original_sender=info.sender.email if info.sender else None,
        original_recipients=info.recipients,
        original_content_length=len(info.original_content or ""),
    )
    return info
