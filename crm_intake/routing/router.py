"""
Entity router: the ordered routing cascade.

Strategies are tried in order; the first one that yields an organization
wins and later strategies are not consulted.
"""

from crm_intake.core.logging import get_logger
from crm_intake.core.models import RoutingResult
from crm_intake.routing.base import RoutingContext, RoutingStrategy
from crm_intake.routing.context import ContextRoutingStrategy
from crm_intake.routing.matcher import EntityResolver
from crm_intake.routing.metadata import MetadataRoutingStrategy
from crm_intake.routing.pattern import PatternRoutingStrategy
from crm_intake.services.audit import AuditRecorder

log = get_logger(__name__)


def default_strategies() -> list[RoutingStrategy]:
    return [
        PatternRoutingStrategy(),
        MetadataRoutingStrategy(),
        ContextRoutingStrategy(),
    ]


class EntityRouter:
    """Resolves a message to an organization and deal."""

    def __init__(self, audit: AuditRecorder, strategies: list[RoutingStrategy] | None = None):
        self.audit = audit
        self.strategies = strategies if strategies is not None else default_strategies()

    def route(self, ctx: RoutingContext, resolver: EntityResolver) -> RoutingResult | None:
        """
        Run the cascade.

        Returns:
            RoutingResult from the first strategy that succeeds, or None
        """
        for strategy in self.strategies:
            if not strategy.is_enabled(ctx.config):
                log.info("routing_strategy_disabled", strategy=strategy.name)
                self.audit.info(
                    ctx.message_id,
                    f"{strategy.name.capitalize()}-based routing skipped: not enabled in routing methods",
                )
                continue

            result = strategy.attempt(ctx, resolver)
            if result is None:
                log.info("routing_strategy_no_result", strategy=strategy.name)
                if not strategy.always_enabled:
                    self.audit.warning(
                        ctx.message_id,
                        f"{strategy.name.capitalize()}-based routing attempted but no organization found",
                    )
                continue

            log.info(
                "message_routed",
                strategy=strategy.name,
                organization_id=result.organization_id,
                deal_id=result.deal_id,
                confidence=result.confidence,
            )
            self.audit.success(
                ctx.message_id,
                f"Organization and deal found/created via {strategy.name} routing",
                {
                    "organization_id": result.organization_id,
                    "organization_name": result.organization_name,
                    "deal_id": result.deal_id,
                    "deal_name": result.deal_name,
                    "routing_confidence": result.confidence,
                },
            )
            return result

        log.info("routing_exhausted", strategies=[s.name for s in self.strategies])
        return None
