"""
AuditorService -- append-only audit trail.

Responsibility:
    Writes one AuditEvent per significant state change (approval queued /
    approved / rejected, sale, return, transfer, price update, payment,
    customer creation) inside the caller's transaction, and answers trace
    queries.

Invariants enforced:
    - seq is allocated by SequenceService, never max+1.
    - Audit events are never modified or deleted (db/immutability.py).
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.logging_config import get_logger
from textile_kernel.models.audit_event import AuditAction, AuditEvent
from textile_kernel.services.sequence_service import SequenceService
from textile_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: str
    payload: dict[str, Any]


class AuditorService:
    """Writer and reader of audit events."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: str,
        actor_id: str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        # Round-trip through canonical JSON so Decimal/datetime survive the JSON column
        clean = json.loads(canonicalize_json(payload or {}))
        event = AuditEvent(
            seq=self._sequences.next_value(SequenceService.AUDIT_EVENT),
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            actor_id=str(actor_id),
            occurred_at=self._clock.now(),
            payload=clean,
        )
        self._session.add(event)
        self._session.flush()
        logger.debug(
            "audit_event_recorded",
            extra={
                "seq": event.seq,
                "audit_action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return event

    def trace(self, entity_type: str, entity_id: str) -> list[AuditTraceEntry]:
        rows = self._session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
            .order_by(AuditEvent.seq)
        ).scalars()
        return [
            AuditTraceEntry(r.seq, r.action, r.occurred_at, r.actor_id, dict(r.payload))
            for r in rows
        ]

    def events(self, action: AuditAction | None = None) -> list[AuditTraceEntry]:
        stmt = select(AuditEvent).order_by(AuditEvent.seq)
        if action is not None:
            stmt = stmt.where(AuditEvent.action == action.value)
        return [
            AuditTraceEntry(r.seq, r.action, r.occurred_at, r.actor_id, dict(r.payload))
            for r in self._session.execute(stmt).scalars()
        ]
