"""
Data models for email intake.

Uses dataclasses for clean, typed data structures. Every persisted model knows
how to turn itself into a store document (to_record/to_dict) and back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parseaddr
from enum import Enum
from typing import Any, Iterator


class AuditStatus(str, Enum):
    """Outcome of one processing stage."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    SKIPPED = "skipped"
    FAILURE = "failure"


class RoutingMethod(str, Enum):
    """Strategy that resolved a message to an organization."""

    PATTERN = "pattern"
    METADATA = "metadata"
    CONTEXT = "context"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Urgency(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """Accept datetimes as stored by either backend (object or ISO string)."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class Sender:
    """Message sender."""

    email: str = ""
    name: str | None = None

    @property
    def domain(self) -> str:
        _, _, domain = self.email.partition("@")
        return domain.lower()

    @property
    def display(self) -> str:
        """Name if known, else address."""
        return self.name or self.email or "Unknown"

    @classmethod
    def from_header(cls, header: str) -> "Sender":
        """Parse a header like 'Name <email@example.com>'."""
        if not header:
            return cls()
        name, email = parseaddr(header)
        return cls(email=email, name=name or None)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Sender":
        data = data or {}
        return cls(email=data.get("email") or "", name=data.get("name"))

    def to_dict(self) -> dict[str, Any]:
        data = {"email": self.email}
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class MessageBody:
    """Plain-text and HTML variants of a message body."""

    text: str = ""
    html: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "html": self.html}


@dataclass
class Linkage:
    """Records created for a routed message."""

    organization_id: str | None = None
    deal_id: str | None = None
    note_id: str | None = None
    parent_type: str = "deal"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Linkage | None":
        if not data:
            return None
        return cls(
            organization_id=data.get("organization_id"),
            deal_id=data.get("deal_id"),
            note_id=data.get("note_id"),
            parent_type=data.get("parent_type", "deal"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "deal_id": self.deal_id,
            "note_id": self.note_id,
            "parent_type": self.parent_type,
        }


@dataclass
class ContactBundle:
    """Contact identifiers found in a message."""

    emails: list[str] = field(default_factory=list)
    phones: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"emails": list(self.emails), "phones": list(self.phones), "names": list(self.names)}


@dataclass
class ExtractedData:
    """Structured data pulled out of a message. Regenerated on every attempt."""

    dates: list[datetime] = field(default_factory=list)
    amounts: list[float] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    contacts: ContactBundle = field(default_factory=ContactBundle)

    @property
    def max_amount(self) -> float | None:
        return max(self.amounts) if self.amounts else None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExtractedData | None":
        if not data:
            return None
        contacts = data.get("contacts") or {}
        return cls(
            dates=[d for d in (parse_datetime(v) for v in data.get("dates", [])) if d],
            amounts=list(data.get("amounts", [])),
            action_items=list(data.get("action_items", [])),
            contacts=ContactBundle(
                emails=list(contacts.get("emails", [])),
                phones=list(contacts.get("phones", [])),
                names=list(contacts.get("names", [])),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "dates": [d.isoformat() for d in self.dates],
            "amounts": list(self.amounts),
            "action_items": list(self.action_items),
            "contacts": self.contacts.to_dict(),
        }

    def counts(self) -> dict[str, int]:
        return {
            "dates": len(self.dates),
            "amounts": len(self.amounts),
            "action_items": len(self.action_items),
        }


@dataclass
class Classification:
    """Keyword-based sentiment, urgency and category of a message."""

    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: Urgency = Urgency.LOW
    category: str = "General"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Classification | None":
        if not data:
            return None
        return cls(
            sentiment=Sentiment(data.get("sentiment", "neutral")),
            urgency=Urgency(data.get("urgency", "low")),
            category=data.get("category", "General"),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "sentiment": self.sentiment.value,
            "urgency": self.urgency.value,
            "category": self.category,
        }


@dataclass(frozen=True)
class AuditEntry:
    """One processing-stage outcome. Never mutated once appended."""

    timestamp: datetime
    status: AuditStatus
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def create(
        cls,
        status: AuditStatus,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> "AuditEntry":
        """Build an entry stamped now, with None-valued details dropped."""
        cleaned = None
        if details:
            cleaned = {k: v for k, v in details.items() if v is not None} or None
        return cls(timestamp=utcnow(), status=status, message=message, details=cleaned)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        return cls(
            timestamp=parse_datetime(data.get("timestamp")) or utcnow(),
            status=AuditStatus(data.get("status", "info")),
            message=data.get("message", ""),
            details=data.get("details"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "message": self.message,
        }
        if self.details:
            data["details"] = self.details
        return data


class AuditTrail:
    """Append-only, ordered list of audit entries."""

    def __init__(self, entries: list[AuditEntry] | None = None):
        self._entries: list[AuditEntry] = list(entries or [])

    def append(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def with_status(self, status: AuditStatus) -> list[AuditEntry]:
        return [e for e in self._entries if e.status == status]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AuditEntry]:
        return iter(tuple(self._entries))

    @classmethod
    def from_list(cls, data: list[dict[str, Any]] | None) -> "AuditTrail":
        return cls([AuditEntry.from_dict(item) for item in data or []])

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]


@dataclass
class InboundMessage:
    """One received email and its processing state."""

    id: str | None = None
    provider_message_id: str = ""
    thread_id: str | None = None
    sender: Sender = field(default_factory=Sender)
    recipients: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    subject: str = ""
    body: MessageBody = field(default_factory=MessageBody)
    received_at: datetime | None = None
    read: bool = False

    # Processing state
    processed: bool = False
    linked_to: Linkage | None = None
    extracted_data: ExtractedData | None = None
    classification: Classification | None = None
    routing_method: RoutingMethod | None = None
    routing_confidence: float | None = None
    audit_trail: AuditTrail = field(default_factory=AuditTrail)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "InboundMessage":
        """Create an InboundMessage from a store document."""
        body = record.get("body") or {}
        routing_method = record.get("routing_method")
        return cls(
            id=record.get("id"),
            provider_message_id=record.get("provider_message_id", ""),
            thread_id=record.get("thread_id"),
            sender=Sender.from_dict(record.get("sender")),
            recipients=list(record.get("recipients") or []),
            cc=list(record.get("cc") or []),
            subject=record.get("subject") or "",
            body=MessageBody(text=body.get("text") or "", html=body.get("html") or ""),
            received_at=parse_datetime(record.get("received_at")),
            read=record.get("read", False),
            processed=record.get("processed", False),
            linked_to=Linkage.from_dict(record.get("linked_to")),
            extracted_data=ExtractedData.from_dict(record.get("extracted_data")),
            classification=Classification.from_dict(record.get("classification")),
            routing_method=RoutingMethod(routing_method) if routing_method else None,
            routing_confidence=record.get("routing_confidence"),
            audit_trail=AuditTrail.from_list(record.get("audit_trail")),
            created_at=parse_datetime(record.get("created_at")),
            updated_at=parse_datetime(record.get("updated_at")),
        )

    def to_record(self) -> dict[str, Any]:
        """Convert to a store document (without the id)."""
        return {
            "provider_message_id": self.provider_message_id,
            "thread_id": self.thread_id,
            "sender": self.sender.to_dict(),
            "recipients": list(self.recipients),
            "cc": list(self.cc),
            "subject": self.subject,
            "body": self.body.to_dict(),
            "received_at": self.received_at,
            "read": self.read,
            "processed": self.processed,
            "linked_to": self.linked_to.to_dict() if self.linked_to else None,
            "extracted_data": self.extracted_data.to_dict() if self.extracted_data else None,
            "classification": self.classification.to_dict() if self.classification else None,
            "routing_method": self.routing_method.value if self.routing_method else None,
            "routing_confidence": self.routing_confidence,
            "audit_trail": self.audit_trail.to_list(),
            "created_at": self.created_at or utcnow(),
            "updated_at": self.updated_at or utcnow(),
        }


@dataclass
class RoutingResult:
    """Organization/deal a message was routed to."""

    organization_id: str
    deal_id: str
    method: RoutingMethod
    confidence: float
    organization_name: str | None = None
    deal_name: str | None = None
