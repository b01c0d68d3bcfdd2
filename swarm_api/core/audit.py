"""Audit events emitted around every wrapped operation, and the sinks that record them."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from supabase import Client

from swarm_api.database.supabase_client import execute

logger = logging.getLogger(__name__)

PHASE_START = "start"
PHASE_SUCCESS = "success"
PHASE_FAILURE = "failure"


@dataclass
class AuditInfo:
    user_id: str
    user_role: str
    operation: str
    resource: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditEvent:
    operation_id: int
    phase: str
    user_id: str
    user_role: str
    operation: str
    resource: str
    resource_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_info(cls, operation_id: int, phase: str, info: AuditInfo, **extra: Any) -> "AuditEvent":
        return cls(
            operation_id=operation_id,
            phase=phase,
            user_id=info.user_id,
            user_role=str(getattr(info.user_role, "value", info.user_role)),
            operation=str(getattr(info.operation, "value", info.operation)),
            resource=str(getattr(info.resource, "value", info.resource)),
            resource_id=info.resource_id,
            metadata=dict(info.metadata),
            **extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditSink(Protocol):
    async def emit(self, event: AuditEvent) -> None:
        ...


class LoggingAuditSink:
    """Writes one [AUDIT] log line per event."""

    def __init__(self, audit_logger: Optional[logging.Logger] = None):
        self.logger = audit_logger or logging.getLogger("swarm_api.audit")

    async def emit(self, event: AuditEvent) -> None:
        line = (
            f"[AUDIT] #{event.operation_id} {event.phase} "
            f"{event.user_role}:{event.user_id} {event.operation} {event.resource}"
        )
        if event.resource_id:
            line += f"/{event.resource_id}"
        if event.duration_ms is not None:
            line += f" {event.duration_ms:.1f}ms"
        if event.error:
            self.logger.warning(f"{line} error={event.error}")
        else:
            self.logger.info(line)


class SupabaseAuditSink:
    """Persists events to the audit_logs table."""

    def __init__(self, supabase: Client, table: str = "audit_logs"):
        self.supabase = supabase
        self.table = table

    async def emit(self, event: AuditEvent) -> None:
        await execute(
            self.supabase.table(self.table).insert(event.to_dict()),
            "audit insert",
        )


class MemoryAuditSink:
    """Keeps events in a list; used by tests and local debugging."""

    def __init__(self):
        self.events = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)
