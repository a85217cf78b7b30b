"""
Text normalization for inbound email bodies.

Strips HTML markup, quoted replies, thread header echoes and signatures so
later stages work on the text the sender actually wrote. None of these
functions raise; empty input gives an empty string.
"""

import html
import re

_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.I | re.S)
_LINE_BREAK_TAGS = re.compile(r"<br\s*/?>|</p>|</div>", re.I)
_TAG = re.compile(r"<[^>]+>")

_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    # Last, so "&amp;lt;" decodes to "&lt;" rather than "<"
    ("&amp;", "&"),
)

_QUOTED_LINE = re.compile(r"^>.*$", re.M)
_WROTE_MARKER = re.compile(r"^On\s+.+\s+wrote:.*$", re.M | re.I)
_FROM_ECHO = re.compile(r"^From:\s+.+$", re.M | re.I)
_SENT_ECHO = re.compile(r"^Sent:\s+.+$", re.M | re.I)
_TO_ECHO = re.compile(r"^To:\s+.+$", re.M | re.I)
_DASH_DELIMITER = re.compile(r"^--\s*$", re.M)
_RULE_DELIMITER = re.compile(r"^[-=]{3,}\s*$", re.M)

SIGNATURE_STARTERS = (
    re.compile(r"^(Best regards|Sincerely|Regards|Thanks|Thank you|Yours|Cheers|Best),?$", re.I),
    re.compile(r"^(Sent from|This email was sent from)", re.I),
    re.compile(r"^--\s*$"),
    re.compile(r"^---\s*$"),
)

# Lines after a signature opener are kept if they match this
IMPORTANT_INFO = re.compile(
    r"(\$[\d,]+|deadline|due date|meeting|follow up|\d{1,2}[/\-]\d{1,2})", re.I
)

_NOISE_LINE = re.compile(r"^(Sent from|This email was sent from|\[cid:|<img)", re.I)
_BARE_URL = re.compile(r"^https?://\S+$", re.I)
_BARE_EMAIL = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
_EXCESS_BLANKS = re.compile(r"\n{3,}")


def extract_text_from_html(raw_html: str | None) -> str:
    """Convert an HTML body to plain text, keeping block boundaries as newlines."""
    if not raw_html:
        return ""
    text = _SCRIPT_STYLE.sub("", raw_html)
    text = _LINE_BREAK_TAGS.sub("\n", text)
    text = _TAG.sub("", text)
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text.strip()


def is_signature_start(line: str) -> bool:
    return any(p.search(line) for p in SIGNATURE_STARTERS)


def _keep_first_to_line(text: str) -> str:
    seen = False

    def replace(match: re.Match) -> str:
        nonlocal seen
        if not seen:
            seen = True
            return match.group(0)
        return ""

    return _TO_ECHO.sub(replace, text)


def clean_email_content(text: str | None) -> str:
    """
    Remove quoted history, header echoes and signatures from plain text.

    Content after a signature opener is dropped line by line, except lines
    carrying an amount, a date-like token or a meeting/deadline keyword.
    """
    if not text:
        return ""

    cleaned = text.replace("\r\n", "\n")
    cleaned = _QUOTED_LINE.sub("", cleaned)
    cleaned = _WROTE_MARKER.sub("", cleaned)
    cleaned = _FROM_ECHO.sub("", cleaned)
    cleaned = _SENT_ECHO.sub("", cleaned)
    cleaned = _keep_first_to_line(cleaned)

    cleaned = _DASH_DELIMITER.split(cleaned)[0].strip()
    cleaned = _RULE_DELIMITER.split(cleaned)[0].strip()

    kept: list[str] = []
    in_signature = False
    for line in cleaned.split("\n"):
        stripped = line.strip()
        if not in_signature and is_signature_start(stripped):
            in_signature = True
        if in_signature and not IMPORTANT_INFO.search(stripped):
            continue
        if _NOISE_LINE.search(stripped):
            continue
        if _BARE_URL.match(stripped) or _BARE_EMAIL.match(stripped):
            continue
        kept.append(line)

    cleaned = "\n".join(kept).strip()
    return _EXCESS_BLANKS.sub("\n\n", cleaned)


_BLOCKQUOTE = re.compile(r"<blockquote[^>]*>.*?</blockquote>", re.I | re.S)
_QUOTE_DIV = re.compile(r"<div[^>]*class=\"[^\"]*quote[^\"]*\"[^>]*>.*?</div>", re.I | re.S)
_HTML_ECHOES = tuple(
    re.compile(pattern, re.I | re.S)
    for pattern in (
        r"<p[^>]*>On\s.*?\swrote:.*?</p>",
        r"On\s[^<]*?\swrote:[^<]*",
        r"<p[^>]*>From:\s.*?</p>",
        r"From:\s[^<]*",
        r"<p[^>]*>Sent:\s.*?</p>",
        r"Sent:\s[^<]*",
    )
)
_HTML_DELIMITER = re.compile(r"<hr[^>]*>|<div[^>]*>--\s*</div>", re.I)
_HTML_SIGNATURES = (
    re.compile(
        r"<(p|div)[^>]*>\s*(Best regards|Sincerely|Regards|Thanks|Thank you|Yours|Cheers|Best),?.*$",
        re.I | re.S,
    ),
)


def clean_email_content_html(raw_html: str | None) -> str:
    """Same structural cleanup as clean_email_content, keeping the markup."""
    if not raw_html:
        return ""

    cleaned = _BLOCKQUOTE.sub("", raw_html)
    cleaned = _QUOTE_DIV.sub("", cleaned)
    for pattern in _HTML_ECHOES:
        cleaned = pattern.sub("", cleaned)

    cleaned = _HTML_DELIMITER.split(cleaned)[0].strip()

    for pattern in _HTML_SIGNATURES:
        match = pattern.search(cleaned)
        if match:
            cleaned = cleaned[:match.start()].strip()

    return cleaned.strip()


def text_to_html(text: str) -> str:
    """Render plain text as escaped HTML with <br> line breaks."""
    if not text:
        return ""
    return html.escape(text, quote=False).replace("\n", "<br>\n")
