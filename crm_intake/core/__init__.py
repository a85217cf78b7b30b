"""Core modules for email intake."""

from .logging import configure_logging, get_logger, bind_context, clear_context
from .errors import (
    CRMIntakeError,
    RecordNotFoundError,
    NoActingUserError,
    MessageProcessingError,
)
from .models import (
    AuditEntry,
    AuditStatus,
    AuditTrail,
    Classification,
    ExtractedData,
    InboundMessage,
    RoutingMethod,
    RoutingResult,
)
from .store import Filter, RecordStore, MemoryRecordStore, get_store
from .database import PostgresRecordStore
from .config_provider import ConfigProvider, ResolvedConfig

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "CRMIntakeError",
    "RecordNotFoundError",
    "NoActingUserError",
    "MessageProcessingError",
    "AuditEntry",
    "AuditStatus",
    "AuditTrail",
    "Classification",
    "ExtractedData",
    "InboundMessage",
    "RoutingMethod",
    "RoutingResult",
    "Filter",
    "RecordStore",
    "MemoryRecordStore",
    "get_store",
    "PostgresRecordStore",
    "ConfigProvider",
    "ResolvedConfig",
]
