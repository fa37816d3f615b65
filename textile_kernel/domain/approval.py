"""
Approval domain types (``textile_kernel.domain.approval``).

Pure value objects for the approval queue.  ZERO I/O.

Lifecycle: ``pending -> approved | rejected``.  Both terminal states have
no outgoing edges (``APPROVAL_TRANSITIONS``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from textile_kernel.domain.actions import Action, action_from_payload
from textile_kernel.domain.risk import Role


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED})


def can_resolve(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class Actor:
    """Who is asking: a stable id, a display label and the resolved role."""

    actor_id: str
    role: Role
    label: str = ""

    @property
    def display(self) -> str:
        return self.label or self.actor_id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of a queued request."""

    request_id: str
    actor_id: str
    actor_label: str
    actor_role: Role
    action_kind: str
    payload: dict[str, Any]
    risk_reason: str
    status: ApprovalStatus
    created_at: datetime
    resolved_at: datetime | None = None
    resolved_by: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def action(self) -> Action:
        """Rebuild the typed action captured at enqueue time."""
        return action_from_payload(self.payload)

    @property
    def requester(self) -> Actor:
        return Actor(self.actor_id, self.actor_role, self.actor_label)
