"""Entity routing: strategies and the cascade that runs them."""

from .base import RoutingContext, RoutingStrategy
from .matcher import EntityResolver, extract_company_name, name_similarity
from .pattern import PatternRoutingStrategy, parse_routing_pattern
from .metadata import MetadataRoutingStrategy
from .context import ContextRoutingStrategy
from .router import EntityRouter, default_strategies

__all__ = [
    "RoutingContext",
    "RoutingStrategy",
    "EntityResolver",
    "extract_company_name",
    "name_similarity",
    "PatternRoutingStrategy",
    "parse_routing_pattern",
    "MetadataRoutingStrategy",
    "ContextRoutingStrategy",
    "EntityRouter",
    "default_strategies",
]
