"""Subject line normalization."""

from typing import Iterable

DEFAULT_SUBJECT_TOKENS = ("Re:", "Fwd:", "FW:", "RE:", "FWD:")


def clean_subject_line(subject: str | None, tokens: Iterable[str] = DEFAULT_SUBJECT_TOKENS) -> str:
    """
    Strip reply/forward tokens from the start of a subject.

    Matching is case-insensitive and repeats until no token prefixes the
    remainder, so "Re: Fwd: Pricing" becomes "Pricing".

    Args:
        subject: Raw subject line
        tokens: Prefix tokens to remove

    Returns:
        Trimmed subject without leading tokens
    """
    if not subject:
        return ""

    prefixes = [t.strip().lower() for t in tokens if t and t.strip()]
    cleaned = subject.strip()
    while True:
        lowered = cleaned.lower()
        token = next((p for p in prefixes if lowered.startswith(p)), None)
        if token is None:
            return cleaned
        cleaned = cleaned[len(token):].strip()
