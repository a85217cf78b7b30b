"""
Fuzzy entity matching against the record store.

Organizations are looked up by exact name, then case-insensitive name, then
best fuzzy score; deals the same way but scoped to one organization. A miss
creates the record with provenance (routing method and confidence).
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from dateutil.relativedelta import relativedelta
from rapidfuzz import fuzz

from crm_intake.core.config_provider import ResolvedConfig
from crm_intake.core.logging import get_logger
from crm_intake.core.models import RoutingMethod, utcnow
from crm_intake.core.store import DEALS, ORGANIZATIONS, Filter, RecordStore
from crm_intake.parsing.subject import clean_subject_line

log = get_logger(__name__)


def name_similarity(a: str, b: str) -> float:
    """Normalized (0-1) similarity of two names, case-insensitive."""
    if not a or not b:
        return 0.0
    return fuzz.ratio(a.strip().lower(), b.strip().lower()) / 100.0


@dataclass
class NameMatch:
    record: dict[str, Any]
    score: float

    @property
    def id(self) -> str:
        return self.record["id"]

    @property
    def name(self) -> str:
        return self.record.get("name") or ""


def best_match(name: str, records: Iterable[dict[str, Any]]) -> NameMatch | None:
    """Highest-scoring record by name, or None when there are no records."""
    best: NameMatch | None = None
    for record in records:
        score = name_similarity(name, record.get("name") or "")
        if best is None or score > best.score:
            best = NameMatch(record=record, score=score)
    return best


def _exact_name(name: str, records: Iterable[dict[str, Any]]) -> dict[str, Any] | None:
    lowered = name.lower()
    for record in records:
        if (record.get("name") or "").strip().lower() == lowered:
            return record
    return None


def _title_from_domain(domain: str) -> str:
    label = domain.split(".")[0]
    return " ".join(word[:1].upper() + word[1:] for word in label.split("-") if word)


_BRACKET = re.compile(r"\[(.+?)\]")
_COLON_PREFIX = re.compile(r"^([A-Z][a-zA-Z\s&]{3,}?):")
_REPLY_TOKENS = {"fw", "fwd", "re", "fw:", "fwd:", "re:"}
_SUBJECT_STARTERS = {"opportunity", "for", "re", "fw", "fwd", "subject", "regarding"}


def extract_company_name(subject: str, domain: str, subject_tokens: Iterable[str] = ()) -> str:
    """
    Derive a company name from a subject line, else from the sender domain.

    Tries, in order: a bracketed token ("[Acme] ..."), a capitalized prefix
    before a colon, the first up-to-three words of a longer subject, and
    finally the domain's first label title-cased ("acme-widgets.com" ->
    "Acme Widgets").
    """
    cleaned = clean_subject_line(subject, subject_tokens) if subject_tokens else (subject or "").strip()
    if len(cleaned.strip()) < 3:
        return _title_from_domain(domain)

    bracket = _BRACKET.search(cleaned)
    if bracket and len(bracket.group(1).strip()) >= 3:
        return bracket.group(1).strip()

    colon = _COLON_PREFIX.match(cleaned)
    if colon:
        name = colon.group(1).strip()
        if len(name) >= 4 and name.lower() not in _REPLY_TOKENS:
            return name

    trimmed = cleaned.strip()
    if len(trimmed) >= 10:
        words = trimmed.split()
        if words and len(words[0]) >= 3 and words[0].lower() not in _SUBJECT_STARTERS:
            candidate = " ".join(words[:3])
            if len(candidate) >= 4:
                return candidate

    return _title_from_domain(domain)


class EntityResolver:
    """Find-or-create for organizations and deals."""

    def __init__(
        self,
        store: RecordStore,
        config: ResolvedConfig,
        acting_user_id: str,
        now: datetime | None = None,
    ):
        self.store = store
        self.config = config
        self.acting_user_id = acting_user_id
        self.now = now or utcnow()

    def organizations(self) -> list[dict[str, Any]]:
        return self.store.query(ORGANIZATIONS)

    def best_organization(self, name: str) -> NameMatch | None:
        return best_match(name, self.organizations())

    def find_organization_by_email(self, email: str) -> dict[str, Any] | None:
        if not email:
            return None
        records = self.store.query(ORGANIZATIONS, [Filter("email", "==", email)], limit=1)
        return records[0] if records else None

    def find_organization_by_domain(self, domain: str) -> dict[str, Any] | None:
        if not domain:
            return None
        for record in self.organizations():
            if domain in (record.get("email") or "").lower():
                return record
        return None

    def find_or_create_organization(
        self, name: str, method: RoutingMethod, confidence: float, allow_fuzzy: bool = True
    ) -> tuple[str, str]:
        """
        Resolve an organization by name, creating it when nothing clears the threshold.

        With allow_fuzzy=False only exact (case-insensitive) names are reused.

        Returns:
            (organization id, organization name)
        """
        name = name.strip()
        exact = self.store.query(ORGANIZATIONS, [Filter("name", "==", name)], limit=1)
        if exact:
            log.info("organization_exact_match", organization_id=exact[0]["id"], name=name)
            return exact[0]["id"], exact[0]["name"]

        records = self.organizations()
        same = _exact_name(name, records)
        if same:
            log.info("organization_exact_match", organization_id=same["id"], name=name)
            return same["id"], same["name"]

        match = best_match(name, records) if allow_fuzzy else None
        if match and match.score >= self.config.fuzzy_match_threshold:
            log.info(
                "organization_fuzzy_match",
                organization_id=match.id,
                name=name,
                matched_name=match.name,
                similarity=round(match.score, 3),
            )
            return match.id, match.name

        now = utcnow()
        organization_id = self.store.insert(ORGANIZATIONS, {
            "name": name,
            "status": "active",
            "created_by": self.acting_user_id,
            "source": "email",
            "routing_method": method.value,
            "routing_confidence": confidence,
            "created_at": now,
            "updated_at": now,
        })
        log.info("organization_created", organization_id=organization_id, name=name, routing_method=method.value)
        return organization_id, name

    def find_or_create_deal(
        self,
        name: str,
        organization_id: str,
        method: RoutingMethod,
        confidence: float,
    ) -> str:
        """Resolve a deal by name within one organization, creating it on a miss."""
        name = name.strip()
        records = self.store.query(DEALS, [Filter("organization_id", "==", organization_id)])

        for record in records:
            if (record.get("name") or "") == name:
                log.info("deal_exact_match", deal_id=record["id"], name=name)
                return record["id"]
        same = _exact_name(name, records)
        if same:
            log.info("deal_exact_match", deal_id=same["id"], name=name)
            return same["id"]

        match = best_match(name, records)
        if match and match.score >= self.config.fuzzy_match_threshold:
            log.info(
                "deal_fuzzy_match",
                deal_id=match.id,
                name=name,
                matched_name=match.name,
                similarity=round(match.score, 3),
            )
            return match.id

        now = utcnow()
        close_date = self.now + relativedelta(months=self.config.deal_close_months)
        deal_id = self.store.insert(DEALS, {
            "name": name,
            "organization_id": organization_id,
            "stage": self.config.deal_initial_stage,
            "owner": self.acting_user_id,
            "created_by": self.acting_user_id,
            "source": "email",
            "expected_close_date": close_date,
            "routing_method": method.value,
            "routing_confidence": confidence,
            "created_at": now,
            "updated_at": now,
        })
        log.info(
            "deal_created",
            deal_id=deal_id,
            organization_id=organization_id,
            name=name,
            expected_close_date=close_date.isoformat(),
        )
        return deal_id
