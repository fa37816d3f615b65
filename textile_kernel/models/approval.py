"""
Module: textile_kernel.models.approval
Responsibility: ORM persistence for the approval queue.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ DTOs only.

Invariants enforced:
    - status is one of pending/approved/rejected (check constraint).
    - request_id is unique.
    - Resolution is a conditional UPDATE ... WHERE status = 'pending'
      issued by ApprovalQueue; this model never changes status itself.
    - Terminal rows are frozen (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base
from textile_kernel.domain.approval import ApprovalRequest, ApprovalStatus
from textile_kernel.domain.risk import Role


class ApprovalRequestModel(Base):
    """Persistent approval request carrying the typed action payload."""

    __tablename__ = "approval_queue"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_queue_valid_status",
        ),
        Index("ix_approval_queue_status_created", "status", "created_at"),
    )

    request_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_label: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    action_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    risk_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<ApprovalRequest {self.request_id} {self.action_kind} status={self.status}>"

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalRequest(
            request_id=self.request_id,
            actor_id=self.actor_id,
            actor_label=self.actor_label,
            actor_role=Role(self.actor_role),
            action_kind=self.action_kind,
            payload=dict(self.payload),
            risk_reason=self.risk_reason,
            status=ApprovalStatus(self.status),
            created_at=self.created_at,
            resolved_at=self.resolved_at,
            resolved_by=self.resolved_by,
        )
