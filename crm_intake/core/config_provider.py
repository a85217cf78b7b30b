"""
Routing configuration resolution.

Values come from three tiers, first hit wins:
    1. user-scoped document in config_settings
    2. global document in config_settings
    3. Settings (environment / hard-coded defaults)

The result is a frozen ResolvedConfig, built once per run and passed to every
stage that needs it.
"""

from dataclasses import dataclass
from typing import Any

from crm_intake.config import Settings, settings as default_settings
from crm_intake.core.logging import get_logger
from crm_intake.core.store import CONFIG_SETTINGS, Filter, RecordStore

log = get_logger(__name__)

KEY_PREFIX = "email_parsing."

FUZZY_MATCH_THRESHOLD = KEY_PREFIX + "fuzzy_match_threshold"
CONTEXT_MATCH_THRESHOLD = KEY_PREFIX + "context_match_threshold"
CONTEXT_MATCH_ACCEPT_THRESHOLD = KEY_PREFIX + "context_match_accept_threshold"
APPLY_ROUTING_METHODS = KEY_PREFIX + "apply_routing_methods"
PARSE_SETTINGS = KEY_PREFIX + "parse_settings"


@dataclass(frozen=True)
class ResolvedConfig:
    """Routing and parsing values for one pipeline run."""

    fuzzy_match_threshold: float = 0.8
    context_match_threshold: float = 0.6
    context_match_accept_threshold: float = 0.7
    routing_methods: tuple[str, ...] = ("pattern",)
    subject_tokens: tuple[str, ...] = ("Re:", "Fwd:", "FW:", "RE:", "FWD:")
    internal_domains: tuple[str, ...] = ("infoglobaltech.com",)
    internal_addresses: tuple[str, ...] = ()
    intake_address: str = "crm@infogloballink.com"
    max_tasks_per_message: int = 5
    deal_initial_stage: str = "New"
    deal_close_months: int = 6

    def is_enabled(self, method: str) -> bool:
        return method in self.routing_methods

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "ResolvedConfig":
        """Tier-3 only: values straight from Settings."""
        source = source or default_settings
        return cls(
            fuzzy_match_threshold=source.fuzzy_match_threshold,
            context_match_threshold=source.context_match_threshold,
            context_match_accept_threshold=source.context_match_accept_threshold,
            routing_methods=tuple(source.routing_methods),
            subject_tokens=tuple(source.subject_tokens),
            internal_domains=tuple(d.lower() for d in source.internal_domains),
            internal_addresses=tuple(a.lower() for a in source.internal_addresses),
            intake_address=source.intake_address.lower(),
            max_tasks_per_message=source.max_tasks_per_message,
            deal_initial_stage=source.deal_initial_stage,
            deal_close_months=source.deal_close_months,
        )


class ConfigProvider:
    """Three-tier key/value lookup over the config_settings collection."""

    def __init__(self, store: RecordStore, source: Settings | None = None):
        self.store = store
        self.source = source or default_settings

    def _lookup(self, key: str, scope: str, user_id: str | None = None) -> Any:
        filters = [Filter("key", "==", key), Filter("scope", "==", scope)]
        if scope == "user":
            filters.append(Filter("user_id", "==", user_id))
        try:
            docs = self.store.query(CONFIG_SETTINGS, filters, limit=1)
        except Exception as e:
            log.warning("config_lookup_failed", key=key, scope=scope, error=str(e))
            return None
        return docs[0].get("value") if docs else None

    def get(self, key: str, default: Any = None, user_id: str | None = None) -> Any:
        """Return the first value found: user override, global override, default."""
        if user_id:
            value = self._lookup(key, "user", user_id)
            if value is not None:
                return value
        value = self._lookup(key, "global")
        if value is not None:
            return value
        return default

    def resolve(self, user_id: str | None = None) -> ResolvedConfig:
        """Build the ResolvedConfig for one run."""
        base = ResolvedConfig.from_settings(self.source)

        parse_settings = self.get(PARSE_SETTINGS, {}, user_id) or {}
        methods = self.get(APPLY_ROUTING_METHODS, list(base.routing_methods), user_id)

        config = ResolvedConfig(
            fuzzy_match_threshold=float(
                self.get(FUZZY_MATCH_THRESHOLD, base.fuzzy_match_threshold, user_id)
            ),
            context_match_threshold=float(
                self.get(CONTEXT_MATCH_THRESHOLD, base.context_match_threshold, user_id)
            ),
            context_match_accept_threshold=float(
                self.get(
                    CONTEXT_MATCH_ACCEPT_THRESHOLD,
                    base.context_match_accept_threshold,
                    user_id,
                )
            ),
            routing_methods=tuple(methods or base.routing_methods),
            subject_tokens=tuple(parse_settings.get("subject_tokens") or base.subject_tokens),
            internal_domains=tuple(
                d.lower() for d in parse_settings.get("domains") or base.internal_domains
            ),
            internal_addresses=tuple(
                a.lower()
                for a in parse_settings.get("email_addresses") or base.internal_addresses
            ),
            intake_address=base.intake_address,
            max_tasks_per_message=base.max_tasks_per_message,
            deal_initial_stage=base.deal_initial_stage,
            deal_close_months=base.deal_close_months,
        )
        log.debug(
            "config_resolved",
            user_id=user_id,
            routing_methods=list(config.routing_methods),
            fuzzy_match_threshold=config.fuzzy_match_threshold,
        )
        return config
