"""
WorkflowOrchestrator -- classify, then execute or defer; replay on approval.

Responsibility:
    The single entry point for operator actions.  ``submit`` runs the
    risk evaluator and either applies the action at once (inventory
    mutation plus ledger, movement, balance and audit effects in one
    transaction) or writes it to the approval queue and notifies the
    reviewers.  ``execute_approved_action`` claims a pending request and
    replays the payload captured at enqueue time; ``reject_approval``
    closes it with no inventory or ledger effect.

Architecture position:
    Kernel > Services.  The only component that owns transactions: every
    unit of work runs in ``session_scope`` on a session from the injected
    factory.

Invariants enforced:
    - Exactly-once approval: the claim (conditional resolve) and the
      replay of a non-batch action share one transaction.  A concurrent
      second approval matches zero pending rows and reports not-found.
    - A replay that fails validation rolls back together with its claim,
      so the request stays pending.
    - Batch actions run one package per transaction; failures are
      reported per item and never undo items that succeeded.
    - Mutations hold the keyed lock for every (package_no, than_no) they
      touch, in sorted order.  A version conflict at flush is retried up
      to ``max_retries`` times, then surfaces as OptimisticLockError.
    - Store failures are logged and re-raised as UpstreamError.

Failure modes:
    - ValidationError / NotFoundError subclasses from preconditions.
    - PermissionDeniedError when a non-admin resolves a request.
    - DuplicateSubmissionError for a repeat within the idempotency TTL.
    - UpstreamError / OptimisticLockError / LockTimeoutError.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Hashable, Iterable, TypeVar
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from textile_kernel.db.engine import session_scope
from textile_kernel.domain.actions import (
    Action,
    ActionKind,
    ReturnPackage,
    ReturnThan,
    SellBatch,
    SellPackage,
    SellThan,
    TransferBatch,
    TransferPackage,
    TransferThan,
    UpdatePrice,
)
from textile_kernel.domain.approval import Actor, ApprovalRequest, ApprovalStatus
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.intent import CONFIDENCE_THRESHOLD, ParsedIntent, build_action
from textile_kernel.domain.risk import (
    ActionContext,
    RiskPolicy,
    Role,
    RoleGatedPolicy,
    evaluate,
)
from textile_kernel.exceptions import (
    OptimisticLockError,
    PermissionDeniedError,
    TextileKernelError,
    UpstreamError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.audit_event import AuditAction
from textile_kernel.services.action_executor import (
    BATCH_KINDS,
    ActionExecutor,
    ExecutionOutcome,
    split_batch,
)
from textile_kernel.services.actors import ActorDirectory
from textile_kernel.services.approval_queue import ApprovalQueue
from textile_kernel.services.auditor_service import AuditorService
from textile_kernel.services.effects import EffectOutcome
from textile_kernel.services.idempotency_cache import RecentActionCache
from textile_kernel.services.inventory_store import InventoryStore
from textile_kernel.services.keyed_lock import KeyedLock
from textile_kernel.services.notification import (
    Decision,
    LoggingNotifier,
    NotificationBridge,
    parse_callback,
)
from textile_kernel.services.query_service import HELP_TEXT, QueryService
from textile_kernel.utils.formatting import fmt_qty
from textile_kernel.utils.hashing import hash_payload

logger = get_logger("services.workflow_orchestrator")

T = TypeVar("T")


class ActionStatus(str, Enum):
    COMPLETED = "completed"
    APPROVAL_REQUIRED = "approval_required"
    PARTIAL = "partial"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class OrchestratorSettings:
    """Runtime knobs, filled from configuration by ``textile_config.bridges``."""

    max_retries: int = 3
    retry_backoff_seconds: float = 0.05
    lock_timeout_seconds: float = 10.0
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    currency: str = "NGN"
    track_outstanding_on_sale: bool = True


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome for one package of a batch action."""

    package_no: str
    ok: bool
    message: str
    txn_id: str | None = None
    thans: int = 0
    yards: Decimal = Decimal("0")
    error_code: str | None = None


@dataclass(frozen=True)
class ActionResult:
    """What ``submit`` / ``execute_approved_action`` / ``reject_approval`` did."""

    status: ActionStatus
    action_kind: str
    message: str
    request_id: str | None = None
    reason: str | None = None
    txn_id: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    effects: tuple[EffectOutcome, ...] = ()
    items: tuple[BatchItemResult, ...] = ()
    notified: bool = True

    @property
    def is_success(self) -> bool:
        return self.status in (ActionStatus.COMPLETED, ActionStatus.APPROVAL_REQUIRED)


@dataclass(frozen=True)
class IntentReply:
    """Text for the operator, plus whatever produced it."""

    text: str
    result: ActionResult | None = None
    data: Any = None
    error_code: str | None = None


class WorkflowOrchestrator:
    """
    Coordinates risk evaluation, the approval queue and action execution.

    Args:
        session_factory: Produces one session per unit of work.
        settings: Retry, lock, intent and reply settings.
        clock: Time source for every service.
        notifier: Outbound channel to reviewers and actors.
        actors: Role lookup used to re-validate callback senders.
        cache: Recent-fingerprint cache for duplicate suppression.
        locks: Keyed mutex registry; share one per process.
        policy: Active risk policy (role-gated by default).
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: OrchestratorSettings | None = None,
        clock: Clock | None = None,
        notifier: NotificationBridge | None = None,
        actors: ActorDirectory | None = None,
        cache: RecentActionCache | None = None,
        locks: KeyedLock | None = None,
        policy: RiskPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or OrchestratorSettings()
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._actors = actors or ActorDirectory()
        self._cache = cache or RecentActionCache(clock=self._clock)
        self._locks = locks or KeyedLock(timeout=self._settings.lock_timeout_seconds)
        self._policy = policy or RoleGatedPolicy()

    @property
    def settings(self) -> OrchestratorSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    def _executor(self, session: Session) -> ActionExecutor:
        return ActionExecutor(
            session,
            self._clock,
            currency=self._settings.currency,
            track_outstanding=self._settings.track_outstanding_on_sale,
        )

    def _read(self, work: Callable[[Session], T]) -> T:
        """Run a read-only callable in its own session."""
        try:
            with session_scope(self._session_factory) as session:
                return work(session)
        except SQLAlchemyError as exc:
            logger.error("store_read_failed", exc_info=True)
            raise UpstreamError("read", str(exc)) from exc

    def _run_unit(
        self, keys: Iterable[Hashable], work: Callable[[Session], T], entity: str,
    ) -> T:
        """
        Run ``work`` in one transaction while holding ``keys``.

        Raises:
            OptimisticLockError: Version conflicts outlasted the retry budget.
            UpstreamError: The store failed.
        """
        keys = list(keys)
        attempts = self._settings.max_retries
        for attempt in range(1, attempts + 1):
            try:
                with self._locks.hold(keys):
                    with session_scope(self._session_factory) as session:
                        return work(session)
            except StaleDataError:
                logger.warning(
                    "optimistic_lock_conflict",
                    extra={"entity": entity, "attempt": attempt, "max_attempts": attempts},
                )
                if attempt == attempts:
                    raise OptimisticLockError(entity, attempts) from None
                time.sleep(self._settings.retry_backoff_seconds * attempt)
            except SQLAlchemyError as exc:
                logger.error("store_write_failed", extra={"entity": entity}, exc_info=True)
                raise UpstreamError(entity, str(exc)) from exc
        raise OptimisticLockError(entity, attempts)

    def _lock_keys(self, action: Action) -> list[Hashable]:
        """Row identities ``action`` may write."""
        if isinstance(action, (SellThan, ReturnThan, TransferThan)):
            keys: list[Hashable] = [("than", action.package_no, action.than_no)]
        elif isinstance(action, (SellPackage, ReturnPackage, TransferPackage)):
            numbers = self._read(lambda s: InventoryStore(s, self._clock).than_numbers(action.package_no))
            keys = [("than", action.package_no, n) for n in numbers]
        elif isinstance(action, UpdatePrice):
            pairs = self._read(lambda s: InventoryStore(s, self._clock).than_keys(action.filters))
            keys = [("than", pkg, n) for pkg, n in pairs]
        else:
            keys = []
        customer = getattr(action, "customer", None)
        if customer:
            keys.append(("customer", customer.strip().lower()))
        return keys

    def _risk_context(self, action: Action) -> ActionContext:
        """Yards a sale would deduct; only the threshold policy reads it."""
        if self._policy.name == RoleGatedPolicy.name:
            return ActionContext()

        def _yards(session: Session) -> Decimal:
            store = InventoryStore(session, self._clock)
            if isinstance(action, SellThan):
                than = store.find_than(action.package_no, action.than_no)
                return than.yards if than is not None else Decimal("0")
            total = Decimal("0")
            for package_no in action.package_nos:
                summary = store.get_package(package_no)
                if summary is not None:
                    total += summary.available_yards
            return total

        if action.kind in (ActionKind.SELL_THAN, ActionKind.SELL_PACKAGE, ActionKind.SELL_BATCH):
            return ActionContext(yards=self._read(_yards))
        return ActionContext()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, action: Action, actor: Actor) -> ActionResult:
        """
        Classify ``action`` and either apply it or queue it for approval.

        Raises:
            DuplicateSubmissionError: Same actor and action within the TTL.
            ValidationError / NotFoundError: A precondition does not hold.
            UpstreamError: The store failed.
        """
        fingerprint = hash_payload({"actor_id": actor.actor_id, "action": action.to_payload()})
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.actor_id,
            action=action.kind.value,
        ):
            self._cache.check_and_record(fingerprint)
            logger.info("action_submitted", extra={"actor_role": actor.role.value})
            try:
                return self._submit(action, actor)
            except Exception:
                # A failed attempt may be retried immediately
                self._cache.forget(fingerprint)
                raise

    def _submit(self, action: Action, actor: Actor) -> ActionResult:
        assessment = evaluate(action, actor.role, self._policy, self._risk_context(action))
        if assessment.requires_approval:
            return self._defer(action, actor, assessment.reason)

        txn_id = f"TXN-{uuid4().hex[:12].upper()}"
        if action.kind in BATCH_KINDS:
            return self._run_batch(action, actor.actor_id, txn_id)
        outcome = self._apply(action, actor.actor_id, txn_id)
        return self._completed(outcome, txn_id)

    def _apply(self, action: Action, actor_id: str, txn_id: str) -> ExecutionOutcome:
        keys = self._lock_keys(action)
        with LogContext.bind(txn_id=txn_id):
            return self._run_unit(
                keys,
                lambda session: self._executor(session).apply(action, actor_id, txn_id),
                action.kind.value,
            )

    @staticmethod
    def _completed(
        outcome: ExecutionOutcome, txn_id: str, request_id: str | None = None,
    ) -> ActionResult:
        logger.info(
            "action_completed",
            extra={"action_kind": outcome.action_kind.value, "txn_id": txn_id},
        )
        return ActionResult(
            status=ActionStatus.COMPLETED,
            action_kind=outcome.action_kind.value,
            message=outcome.message,
            request_id=request_id,
            txn_id=txn_id,
            detail=outcome.detail,
            effects=outcome.effects,
        )

    def _defer(self, action: Action, actor: Actor, reason: str) -> ActionResult:
        def work(session: Session) -> tuple[ApprovalRequest, str]:
            request = ApprovalQueue(session, self._clock).enqueue(action, actor, reason)
            AuditorService(session, self._clock).record(
                AuditAction.APPROVAL_QUEUED, "ApprovalRequest", request.request_id,
                actor.actor_id, {"action": action.to_payload(), "reason": reason},
            )
            return request, self._review_summary(session, action)

        request, summary = self._run_unit((), work, "approval_queue")
        with LogContext.bind(request_id=request.request_id):
            logger.info("action_deferred", extra={"reason": reason})
            notified = self._notify_reviewers(request, summary)
        return ActionResult(
            status=ActionStatus.APPROVAL_REQUIRED,
            action_kind=action.kind.value,
            message=f"Needs admin approval ({reason}). Request: {request.request_id}",
            request_id=request.request_id,
            reason=reason,
            notified=notified,
        )

    def _review_summary(self, session: Session, action: Action) -> str:
        """The action line plus the current state of every package it names."""
        store = InventoryStore(session, self._clock)
        lines = [action.summary()]
        for package_no in action.package_nos:
            package = store.get_package(package_no)
            if package is None:
                lines.append(f"- {package_no}: not in stock")
                continue
            label = f"{package.design} {package.shade}".strip()
            than_no = getattr(action, "than_no", None)
            than = next((t for t in package.thans if t.than_no == than_no), None)
            if than is not None:
                state = f"sold to {than.sold_to}" if than.sold_to else than.status.value
                lines.append(
                    f"- {package_no}/{than.than_no}: {label}, {fmt_qty(than.yards)} yds, "
                    f"{state}, in {than.warehouse}"
                )
                continue
            lines.append(
                f"- {package_no}: {label}, {len(package.available_thans)} of "
                f"{package.total_thans} thans available "
                f"({fmt_qty(package.available_yards)} yds), in {package.warehouse}"
            )
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def _run_batch(
        self, action: SellBatch | TransferBatch, actor_id: str, txn_prefix: str,
        request_id: str | None = None,
    ) -> ActionResult:
        items: list[BatchItemResult] = []
        for package_no, item_action in split_batch(action):
            txn_id = f"{txn_prefix}-{package_no}"
            try:
                outcome = self._apply(item_action, actor_id, txn_id)
            except TextileKernelError as exc:
                logger.warning(
                    "batch_item_failed",
                    extra={"package_no": package_no, "error_code": exc.code},
                )
                items.append(BatchItemResult(
                    package_no, False, exc.user_message, error_code=exc.code,
                ))
                continue
            items.append(BatchItemResult(
                package_no,
                True,
                outcome.message,
                txn_id=txn_id,
                thans=len(outcome.detail.get("thans", ())),
                yards=outcome.detail.get("yards", Decimal("0")),
            ))

        succeeded = [i for i in items if i.ok]
        if len(succeeded) == len(items):
            status = ActionStatus.COMPLETED
        elif succeeded:
            status = ActionStatus.PARTIAL
        else:
            status = ActionStatus.FAILED

        if isinstance(action, SellBatch):
            title = f"Batch sale to {action.customer}:"
        else:
            title = f"Batch transfer to {action.to_warehouse}:"
        lines = [title]
        for item in items:
            body = f"{item.thans} thans, {fmt_qty(item.yards)} yds" if item.ok else item.message
            lines.append(f"Pkg {item.package_no}: {body}")
        total_yards = sum((i.yards for i in succeeded), Decimal("0"))
        lines.extend([
            "",
            f"Total: {len(succeeded)} packages, {sum(i.thans for i in succeeded)} thans, "
            f"{fmt_qty(total_yards)} yards",
        ])

        logger.info(
            "batch_completed",
            extra={
                "status": status.value,
                "packages": len(items),
                "succeeded": len(succeeded),
            },
        )
        return ActionResult(
            status=status,
            action_kind=action.kind.value,
            message="\n".join(lines),
            request_id=request_id,
            txn_id=txn_prefix,
            items=tuple(items),
        )

    # ------------------------------------------------------------------
    # Approval resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _require_admin(approver: Actor, operation: str) -> None:
        if approver.role != Role.ADMIN:
            logger.warning(
                "resolution_denied",
                extra={"approver_id": approver.actor_id, "operation": operation},
            )
            raise PermissionDeniedError(approver.actor_id, approver.role.value, operation)

    def pending_requests(self, reviewer: Actor) -> list[ApprovalRequest]:
        """Pending requests, oldest first (admins only)."""
        self._require_admin(reviewer, "review pending requests")
        return self._read(lambda s: ApprovalQueue(s, self._clock).list_pending())

    def execute_approved_action(self, request_id: str, approver: Actor) -> ActionResult:
        """
        Approve a pending request and replay its captured action.

        Raises:
            PermissionDeniedError: ``approver`` is not an admin.
            ApprovalNotFoundError: Absent or already resolved.
            ValidationError: The replay's preconditions no longer hold; the
                request stays pending.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            request_id=request_id,
            actor_id=approver.actor_id,
        ):
            self._require_admin(approver, "approve")
            request = self._read(lambda s: ApprovalQueue(s, self._clock).get_pending(request_id))
            action = request.action()

            if action.kind in BATCH_KINDS:
                self._claim(request_id, approver, request)
                result = self._run_batch(action, request.actor_id, request_id, request_id)
            else:
                result = self._replay(request, action, approver)

            self._notify_outcome(
                request, approver,
                f"Request {request_id} approved. Changes applied.",
                f"Your request ({request_id}) has been approved by admin. Changes applied.",
            )
            return result

    def _claim(self, request_id: str, approver: Actor, request: ApprovalRequest) -> None:
        def work(session: Session) -> None:
            ApprovalQueue(session, self._clock).resolve(
                request_id, ApprovalStatus.APPROVED, approver.actor_id,
            )
            AuditorService(session, self._clock).record(
                AuditAction.APPROVAL_APPROVED, "ApprovalRequest", request_id,
                approver.actor_id, {"action_kind": request.action_kind},
            )

        self._run_unit([("approval", request_id)], work, "approval_queue")

    def _replay(self, request: ApprovalRequest, action: Action, approver: Actor) -> ActionResult:
        request_id = request.request_id

        def work(session: Session) -> ExecutionOutcome:
            ApprovalQueue(session, self._clock).resolve(
                request_id, ApprovalStatus.APPROVED, approver.actor_id,
            )
            outcome = self._executor(session).apply(action, request.actor_id, request_id)
            AuditorService(session, self._clock).record(
                AuditAction.APPROVAL_APPROVED, "ApprovalRequest", request_id,
                approver.actor_id, {"action_kind": request.action_kind, "txn_id": request_id},
            )
            return outcome

        keys = [("approval", request_id), *self._lock_keys(action)]
        try:
            with LogContext.bind(txn_id=request_id):
                outcome = self._run_unit(keys, work, action.kind.value)
        except ValidationError as exc:
            logger.warning(
                "approved_action_invalid",
                extra={"error_code": exc.code, "detail": str(exc)},
            )
            raise
        return self._completed(outcome, request_id, request_id)

    def reject_approval(self, request_id: str, approver: Actor) -> ActionResult:
        """
        Reject a pending request; nothing in inventory or the ledger changes.

        Raises:
            PermissionDeniedError: ``approver`` is not an admin.
            ApprovalNotFoundError: Absent or already resolved.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            request_id=request_id,
            actor_id=approver.actor_id,
        ):
            self._require_admin(approver, "reject")

            def work(session: Session) -> ApprovalRequest:
                request = ApprovalQueue(session, self._clock).resolve(
                    request_id, ApprovalStatus.REJECTED, approver.actor_id,
                )
                AuditorService(session, self._clock).record(
                    AuditAction.APPROVAL_REJECTED, "ApprovalRequest", request_id,
                    approver.actor_id, {"action_kind": request.action_kind},
                )
                return request

            request = self._run_unit([("approval", request_id)], work, "approval_queue")
            logger.info("approval_rejected")
            self._notify_outcome(
                request, approver,
                f"Request {request_id} rejected.",
                f"Your request ({request_id}) has been rejected by admin.",
            )
            return ActionResult(
                status=ActionStatus.REJECTED,
                action_kind=request.action_kind,
                message=f"Request {request_id} rejected.",
                request_id=request_id,
            )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify_reviewers(self, request: ApprovalRequest, summary: str) -> bool:
        """The request is already durable; a delivery failure is logged, not raised."""
        try:
            self._notifier.notify_reviewers(request, summary)
        except Exception:
            logger.error(
                "reviewer_notification_failed",
                extra={"request_id": request.request_id},
                exc_info=True,
            )
            return False
        return True

    def _notify_outcome(
        self, request: ApprovalRequest, approver: Actor, approver_text: str, requester_text: str,
    ) -> None:
        recipients = [(approver.actor_id, approver_text)]
        if request.actor_id != approver.actor_id:
            recipients.append((request.actor_id, requester_text))
        for recipient, text in recipients:
            try:
                self._notifier.notify_actor(recipient, text)
            except Exception:
                logger.error(
                    "actor_notification_failed",
                    extra={"recipient": recipient, "request_id": request.request_id},
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Conversational surface
    # ------------------------------------------------------------------

    def handle_intent(self, intent: ParsedIntent, actor: Actor) -> IntentReply:
        """
        Answer one classified operator message.

        Untrusted intents get the classifier's clarification back
        verbatim.  Kernel errors become their ``user_message``.
        """
        with LogContext.bind(actor_id=actor.actor_id, action=intent.action):
            if not intent.is_trusted(self._settings.confidence_threshold):
                logger.info("intent_untrusted", extra={"confidence": intent.confidence})
                return IntentReply(intent.clarification or HELP_TEXT)

            try:
                if intent.is_read:
                    reply = self._read(
                        lambda s: QueryService(s, self._clock, self._settings.currency).answer(
                            intent, actor,
                        )
                    )
                    return IntentReply(reply.text, data=reply.data)
                if intent.action not in {k.value for k in ActionKind}:
                    return IntentReply(HELP_TEXT)
                result = self.submit(build_action(intent), actor)
            except TextileKernelError as exc:
                logger.info("intent_failed", extra={"error_code": exc.code})
                return IntentReply(exc.user_message, error_code=exc.code)
            return IntentReply(result.message, result=result)

    def handle_callback(self, data: str, sender_id: str, sender_label: str = "") -> str:
        """
        Resolve a reviewer's approve/reject button press.

        The sender's role is looked up again; only admins may resolve.
        Every outcome, including a denial, comes back as reply text.
        """
        parsed = parse_callback(data)
        if parsed is None:
            return "Unknown action."
        decision, request_id = parsed

        role = self._actors.role_of(sender_id)
        if role != Role.ADMIN:
            denial = PermissionDeniedError(str(sender_id), role.value if role else None, "approve")
            logger.warning(
                "callback_denied",
                extra={"sender_id": str(sender_id), "request_id": request_id},
            )
            return denial.user_message

        approver = Actor(str(sender_id), role, sender_label)
        try:
            if decision is Decision.APPROVE:
                result = self.execute_approved_action(request_id, approver)
            else:
                result = self.reject_approval(request_id, approver)
        except TextileKernelError as exc:
            logger.info(
                "callback_failed",
                extra={"request_id": request_id, "error_code": exc.code},
            )
            if decision is Decision.APPROVE and isinstance(exc, ValidationError):
                return f"Could not apply request {request_id}: {exc.user_message}"
            return exc.user_message
        return result.message
