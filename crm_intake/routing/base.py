"""
Base class for routing strategies.

A strategy looks at a normalized message and either resolves it to an
organization and deal or returns None so the router can try the next one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from crm_intake.core.config_provider import ResolvedConfig
from crm_intake.core.models import RoutingMethod, RoutingResult, Sender, utcnow
from crm_intake.routing.matcher import EntityResolver


@dataclass
class RoutingContext:
    """Everything a strategy may read about the message being routed."""

    sender: Sender
    subject: str
    content: str
    config: ResolvedConfig
    # Subject/text scanned for explicit patterns. For forwarded messages these
    # are the original subject and wrapper text plus recovered body.
    pattern_subject: str | None = None
    pattern_content: str | None = None
    message_id: str | None = None
    now: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.pattern_subject is None:
            self.pattern_subject = self.subject
        if self.pattern_content is None:
            self.pattern_content = self.content


class RoutingStrategy(ABC):
    """Abstract base class for routing strategies."""

    method: RoutingMethod
    # Strategies that run regardless of the configured routing methods
    always_enabled: bool = False

    def is_enabled(self, config: ResolvedConfig) -> bool:
        return self.always_enabled or config.is_enabled(self.method.value)

    @abstractmethod
    def attempt(self, ctx: RoutingContext, resolver: EntityResolver) -> RoutingResult | None:
        """
        Try to resolve the message.

        Args:
            ctx: Routing context
            resolver: Find-or-create access to organizations and deals

        Returns:
            RoutingResult, or None if this strategy cannot route the message
        """

    @property
    def name(self) -> str:
        return self.method.value
