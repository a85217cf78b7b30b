"""
Explicit pattern routing.

Looks for "Account: Acme Corp" / "Opportunity: Website Revamp" style markers
in the subject and body. The highest-confidence strategy.
"""

import re
from dataclasses import dataclass

from crm_intake.core.logging import get_logger
from crm_intake.core.models import RoutingMethod, RoutingResult
from crm_intake.routing.base import RoutingContext, RoutingStrategy
from crm_intake.routing.matcher import EntityResolver

log = get_logger(__name__)

PATTERN_CONFIDENCE = 0.9
PATTERN_DEFAULT_DEAL_CONFIDENCE = 0.7

_ORG_KEYWORDS = r"\b(?:Account|Company|Client|Customer|Organization|Org)"
_DEAL_KEYWORDS = r"\b(?:Opportunity|Deal|Project|Engagement|Lead|Proposal)"

ORGANIZATION_PATTERNS = (
    re.compile(_ORG_KEYWORDS + r":\s*([^,\n]+)", re.I),
    re.compile(_ORG_KEYWORDS + r"\s+is\s+([^,\n]+)", re.I),
    re.compile(_ORG_KEYWORDS + r"\s+=\s+([^,\n]+)", re.I),
)

DEAL_PATTERNS = (
    re.compile(_DEAL_KEYWORDS + r":\s*([^\n]+)", re.I),
    re.compile(_DEAL_KEYWORDS + r"\s+is\s+([^\n]+)", re.I),
    re.compile(_DEAL_KEYWORDS + r"\s+=\s+([^\n]+)", re.I),
    re.compile(_DEAL_KEYWORDS + r"\s+for\s+([^\n]+)", re.I),
)


@dataclass
class RoutingPattern:
    organization_name: str
    deal_name: str | None = None


def _first_capture(patterns: tuple[re.Pattern, ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def parse_routing_pattern(content: str | None, subject: str | None = None) -> RoutingPattern | None:
    """
    Find explicit organization/deal markers in "subject\\ncontent".

    Returns:
        RoutingPattern when an organization name was found, else None
    """
    if not content and not subject:
        return None

    text = f"{subject or ''}\n{content or ''}"
    organization = _first_capture(ORGANIZATION_PATTERNS, text)
    if not organization:
        return None
    return RoutingPattern(
        organization_name=organization,
        deal_name=_first_capture(DEAL_PATTERNS, text),
    )


def default_deal_name(subject: str) -> str:
    return f"Email Deal - {subject[:50] or 'New'}"


class PatternRoutingStrategy(RoutingStrategy):
    """Routes on explicit Account/Opportunity markers."""

    method = RoutingMethod.PATTERN
    always_enabled = True

    def attempt(self, ctx: RoutingContext, resolver: EntityResolver) -> RoutingResult | None:
        pattern = parse_routing_pattern(ctx.pattern_content, ctx.pattern_subject)
        log.info(
            "pattern_routing_parsed",
            organization_name=pattern.organization_name if pattern else None,
            deal_name=pattern.deal_name if pattern else None,
        )
        if pattern is None:
            return None

        organization_id, organization_name = resolver.find_or_create_organization(
            pattern.organization_name, self.method, PATTERN_CONFIDENCE
        )

        if pattern.deal_name:
            deal_name = pattern.deal_name
            confidence = PATTERN_CONFIDENCE
        else:
            deal_name = default_deal_name(ctx.subject)
            confidence = PATTERN_DEFAULT_DEAL_CONFIDENCE

        deal_id = resolver.find_or_create_deal(deal_name, organization_id, self.method, confidence)
        return RoutingResult(
            organization_id=organization_id,
            deal_id=deal_id,
            method=self.method,
            confidence=confidence,
            organization_name=organization_name,
            deal_name=deal_name,
        )
