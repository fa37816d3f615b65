"""
Module: textile_kernel.models.audit_event
Responsibility: ORM persistence for the append-only audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (db/immutability.py).
    - seq is monotonically increasing, allocated by SequenceService.

Minimum coverage (each action type generates at least one AuditEvent):
    - APPROVAL_QUEUED, APPROVAL_APPROVED, APPROVAL_REJECTED
    - SALE, RETURN, TRANSFER, PRICE_UPDATE
    - PAYMENT_RECEIVED, CUSTOMER_CREATED
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Approval lifecycle
    APPROVAL_QUEUED = "approval_queued"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"

    # Inventory
    SALE = "sale"
    RETURN = "return"
    TRANSFER = "transfer"
    PRICE_UPDATE = "price_update"

    # Customers and money
    PAYMENT_RECEIVED = "payment_received"
    CUSTOMER_CREATED = "customer_created"


class AuditEvent(Base):
    """
    Audit event row.

    Contract:
        AuditEvent rows are append-only, never updated or deleted.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # e.g. "Than", "Package", "ApprovalRequest", "Customer"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<AuditEvent #{self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
