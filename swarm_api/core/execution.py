"""
Execution wrapper: every service operation runs inside execute(), which
assigns it a process-unique id and brackets it with start and success/failure
audit events.
"""

import itertools
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from swarm_api.core.audit import (
    PHASE_FAILURE,
    PHASE_START,
    PHASE_SUCCESS,
    AuditEvent,
    AuditInfo,
    AuditSink,
    LoggingAuditSink,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutionContext:
    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or LoggingAuditSink()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def next_operation_id(self) -> int:
        with self._lock:
            return next(self._ids)

    async def execute(self, operation: Callable[[], Awaitable[T]], audit: AuditInfo) -> T:
        """Run operation; its result or exception passes through untouched."""
        operation_id = self.next_operation_id()
        started = time.monotonic()
        await self._emit(AuditEvent.from_info(operation_id, PHASE_START, audit))
        try:
            result = await operation()
        except Exception as e:
            duration_ms = (time.monotonic() - started) * 1000
            await self._emit(
                AuditEvent.from_info(operation_id, PHASE_FAILURE, audit, duration_ms=duration_ms, error=str(e) or type(e).__name__)
            )
            raise
        duration_ms = (time.monotonic() - started) * 1000
        await self._emit(AuditEvent.from_info(operation_id, PHASE_SUCCESS, audit, duration_ms=duration_ms))
        return result

    async def _emit(self, event: AuditEvent) -> None:
        # A broken audit sink must never change the outcome of the operation
        try:
            await self.sink.emit(event)
        except Exception as e:
            logger.error(f"Audit sink failed for operation #{event.operation_id} ({event.phase}): {e}")


def audit_info(principal: Any, operation: str, resource: str, resource_id: Optional[str] = None, **metadata: Any) -> AuditInfo:
    """AuditInfo for a request principal."""
    if getattr(principal, "company_id", None):
        metadata.setdefault("company_id", principal.company_id)
    return AuditInfo(
        user_id=principal.user_id,
        user_role=principal.role.value,
        operation=operation,
        resource=resource,
        resource_id=resource_id,
        metadata=metadata,
    )
