"""Pure text-processing stages: normalization, unwrapping, extraction, classification."""

from .normalizer import (
    clean_email_content,
    clean_email_content_html,
    extract_text_from_html,
    text_to_html,
)
from .forwarded import ForwardedInfo, extract_forwarded_info, is_forwarded_to_intake
from .subject import clean_subject_line
from .extractor import extract_structured_data, filter_internal_contacts
from .classifier import analyze_email

__all__ = [
    "clean_email_content",
    "clean_email_content_html",
    "extract_text_from_html",
    "text_to_html",
    "ForwardedInfo",
    "extract_forwarded_info",
    "is_forwarded_to_intake",
    "clean_subject_line",
    "extract_structured_data",
    "filter_internal_contacts",
    "analyze_email",
]
