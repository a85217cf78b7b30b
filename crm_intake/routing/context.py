"""
Context routing: company names from signatures, subject or sender domain.

The lowest-confidence strategy. A weak fuzzy match is not reused; if nothing
clears the acceptance threshold the organization is created instead.
"""

import re

from crm_intake.core.logging import get_logger
from crm_intake.core.models import RoutingMethod, RoutingResult
from crm_intake.routing.base import RoutingContext, RoutingStrategy
from crm_intake.routing.matcher import EntityResolver, extract_company_name

log = get_logger(__name__)

CONTEXT_CONFIDENCE = 0.4
MIN_DEAL_NAME_LENGTH = 10

_SUFFIX = r"(?:Inc|LLC|Corp|Ltd|Company|Co)\b\.?"

SIGNATURE_PATTERNS = (
    re.compile(r"\|[ \t]*((?:[A-Z][\w&'-]*[ \t]+){1,4}" + _SUFFIX + ")"),
    re.compile(r"Company:[ \t]*([A-Z][\w&' -]+)"),
    re.compile(r"\b((?:[A-Z][\w&'-]*[ \t]+){1,4}" + _SUFFIX + ")"),
)


def company_from_signature(content: str) -> str | None:
    for pattern in SIGNATURE_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


class ContextRoutingStrategy(RoutingStrategy):
    """Routes on company names found in the message context."""

    method = RoutingMethod.CONTEXT

    def attempt(self, ctx: RoutingContext, resolver: EntityResolver) -> RoutingResult | None:
        domain = ctx.sender.domain
        if not domain:
            log.info("context_routing_no_domain", sender=ctx.sender.email)
            return None

        company = company_from_signature(ctx.content)
        if not company:
            company = extract_company_name(ctx.subject, domain, ctx.config.subject_tokens)

        match = resolver.best_organization(company)
        if (
            match is not None
            and match.score >= ctx.config.context_match_threshold
            and match.score >= ctx.config.context_match_accept_threshold
        ):
            organization_id, organization_name = match.id, match.name
            log.info(
                "context_organization_matched",
                organization_id=organization_id,
                company=company,
                matched_name=organization_name,
                similarity=round(match.score, 3),
            )
        else:
            organization_id, organization_name = resolver.find_or_create_organization(
                company, self.method, CONTEXT_CONFIDENCE, allow_fuzzy=False
            )

        deal_name = ctx.subject[:50]
        if len(deal_name) < MIN_DEAL_NAME_LENGTH:
            deal_name = f"Email Deal - {ctx.now.strftime('%Y-%m-%d')}"

        deal_id = resolver.find_or_create_deal(
            deal_name, organization_id, self.method, CONTEXT_CONFIDENCE
        )
        return RoutingResult(
            organization_id=organization_id,
            deal_id=deal_id,
            method=self.method,
            confidence=CONTEXT_CONFIDENCE,
            organization_name=organization_name,
            deal_name=deal_name,
        )
