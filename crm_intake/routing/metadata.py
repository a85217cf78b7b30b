"""Sender metadata routing: stored organization emails, then sender domain."""

from crm_intake.core.logging import get_logger
from crm_intake.core.models import RoutingMethod, RoutingResult
from crm_intake.routing.base import RoutingContext, RoutingStrategy
from crm_intake.routing.matcher import EntityResolver, extract_company_name
from crm_intake.routing.pattern import default_deal_name

log = get_logger(__name__)

METADATA_CONFIDENCE = 0.6


class MetadataRoutingStrategy(RoutingStrategy):
    """Routes on the sender address and domain."""

    method = RoutingMethod.METADATA

    def attempt(self, ctx: RoutingContext, resolver: EntityResolver) -> RoutingResult | None:
        domain = ctx.sender.domain
        if not domain:
            log.info("metadata_routing_no_domain", sender=ctx.sender.email)
            return None

        record = resolver.find_organization_by_email(ctx.sender.email)
        if record is None:
            record = resolver.find_organization_by_domain(domain)

        if record is not None:
            organization_id, organization_name = record["id"], record.get("name") or ""
            log.info("metadata_organization_found", organization_id=organization_id, domain=domain)
        else:
            company = extract_company_name(ctx.subject, domain, ctx.config.subject_tokens)
            organization_id, organization_name = resolver.find_or_create_organization(
                company, self.method, METADATA_CONFIDENCE
            )

        deal_name = default_deal_name(ctx.subject)
        deal_id = resolver.find_or_create_deal(
            deal_name, organization_id, self.method, METADATA_CONFIDENCE
        )
        return RoutingResult(
            organization_id=organization_id,
            deal_id=deal_id,
            method=self.method,
            confidence=METADATA_CONFIDENCE,
            organization_name=organization_name,
            deal_name=deal_name,
        )
