"""Services for the textile kernel (write side and read side)."""

from textile_kernel.services.action_executor import ActionExecutor, ExecutionOutcome, split_batch
from textile_kernel.services.actors import ActorDirectory
from textile_kernel.services.approval_queue import ApprovalQueue
from textile_kernel.services.auditor_service import AuditorService
from textile_kernel.services.customer_service import CustomerService
from textile_kernel.services.effects import EffectOutcome, EffectPipeline, EffectStatus
from textile_kernel.services.idempotency_cache import RecentActionCache
from textile_kernel.services.inventory_store import InventoryStore
from textile_kernel.services.keyed_lock import KeyedLock
from textile_kernel.services.ledger_posting import LedgerPostingService, seed_chart_of_accounts
from textile_kernel.services.notification import (
    LoggingNotifier,
    NotificationBridge,
    RecordingNotifier,
)
from textile_kernel.services.query_service import QueryReply, QueryService
from textile_kernel.services.sequence_service import SequenceService, seed_sequences
from textile_kernel.services.stock_movement_log import StockMovementLog
from textile_kernel.services.workflow_orchestrator import (
    ActionResult,
    ActionStatus,
    BatchItemResult,
    IntentReply,
    OrchestratorSettings,
    WorkflowOrchestrator,
)

__all__ = [
    "ActionExecutor",
    "ActionResult",
    "ActionStatus",
    "ActorDirectory",
    "ApprovalQueue",
    "AuditorService",
    "BatchItemResult",
    "CustomerService",
    "EffectOutcome",
    "EffectPipeline",
    "EffectStatus",
    "ExecutionOutcome",
    "IntentReply",
    "InventoryStore",
    "KeyedLock",
    "LedgerPostingService",
    "LoggingNotifier",
    "NotificationBridge",
    "OrchestratorSettings",
    "QueryReply",
    "QueryService",
    "RecentActionCache",
    "RecordingNotifier",
    "SequenceService",
    "StockMovementLog",
    "WorkflowOrchestrator",
    "seed_chart_of_accounts",
    "seed_sequences",
    "split_batch",
]
