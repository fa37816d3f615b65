"""
ApprovalQueue -- durable log of actions waiting for an admin.

Responsibility:
    Persists the typed payload of a deferred action together with the
    requester and the risk reason, lists what is pending, and resolves a
    request exactly once.

Invariants enforced:
    - A request is resolved at most once, across threads and processes:
      ``resolve`` is a single ``UPDATE ... WHERE request_id = ? AND
      status = 'pending'`` and a zero rowcount means someone else won.
    - A resolved request reports not-found on every later lookup or
      resolve attempt.

Failure modes:
    - ApprovalNotFoundError when the request is absent or already
      resolved.
"""

from __future__ import annotations

from sqlalchemy import select, update

from textile_kernel.domain.actions import Action
from textile_kernel.domain.approval import Actor, ApprovalRequest, ApprovalStatus
from textile_kernel.exceptions import ApprovalNotFoundError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.approval import ApprovalRequestModel
from textile_kernel.services.base import BaseService
from textile_kernel.services.sequence_service import SequenceService

logger = get_logger("services.approval_queue")


class ApprovalQueue(BaseService):
    """Pending-request store with single resolution."""

    def enqueue(self, action: Action, actor: Actor, reason: str) -> ApprovalRequest:
        row = ApprovalRequestModel(
            request_id=SequenceService(self.session).next_id(SequenceService.APPROVAL, self.clock),
            actor_id=actor.actor_id,
            actor_label=actor.label,
            actor_role=actor.role.value,
            action_kind=action.kind.value,
            payload=action.to_payload(),
            risk_reason=reason,
            status=ApprovalStatus.PENDING.value,
            created_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "approval_enqueued",
            extra={
                "request_id": row.request_id,
                "action_kind": row.action_kind,
                "actor_id": actor.actor_id,
            },
        )
        return row.to_dto()

    def list_pending(self) -> list[ApprovalRequest]:
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.status == ApprovalStatus.PENDING.value)
            .order_by(ApprovalRequestModel.created_at, ApprovalRequestModel.request_id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def get(self, request_id: str) -> ApprovalRequest | None:
        """A request in any status."""
        row = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def get_pending(self, request_id: str) -> ApprovalRequest:
        """
        Raises:
            ApprovalNotFoundError: Absent or already resolved.
        """
        request = self.get(request_id)
        if request is None or not request.is_pending:
            raise ApprovalNotFoundError(request_id)
        return request

    def resolve(
        self, request_id: str, status: ApprovalStatus, resolved_by: str,
    ) -> ApprovalRequest:
        """
        Move a pending request to a terminal status.

        Raises:
            ValueError: ``status`` is not terminal.
            ApprovalNotFoundError: No pending request matched.
        """
        if status == ApprovalStatus.PENDING:
            raise ValueError("resolve() needs a terminal status")
        result = self.session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.request_id == request_id,
                ApprovalRequestModel.status == ApprovalStatus.PENDING.value,
            )
            .values(
                status=status.value,
                resolved_at=self.clock.now(),
                resolved_by=resolved_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "approval_resolve_lost",
                extra={"request_id": request_id, "status": status.value},
            )
            raise ApprovalNotFoundError(request_id)

        logger.info(
            "approval_resolved",
            extra={"request_id": request_id, "status": status.value, "resolved_by": resolved_by},
        )
        request = self.get(request_id)
        if request is None:
            raise ApprovalNotFoundError(request_id)
        return request
