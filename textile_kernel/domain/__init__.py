"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from textile_kernel.domain.actions import (
    Action,
    ActionKind,
    AddCustomer,
    RecordPayment,
    ReturnPackage,
    ReturnThan,
    SellBatch,
    SellPackage,
    SellThan,
    TransferBatch,
    TransferPackage,
    TransferThan,
    UpdatePrice,
    action_from_payload,
)
from textile_kernel.domain.approval import Actor, ApprovalRequest, ApprovalStatus
from textile_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from textile_kernel.domain.intent import IntentClassifier, ParsedIntent, build_action
from textile_kernel.domain.inventory import (
    InventoryFilters,
    PackageSummary,
    StockSummary,
    ThanInfo,
    ThanStatus,
)
from textile_kernel.domain.ledger import LedgerEntryInfo, TrialBalanceRow
from textile_kernel.domain.risk import (
    RiskAssessment,
    RiskLevel,
    Role,
    RoleGatedPolicy,
    ThresholdPolicy,
    evaluate,
)

__all__ = [
    "Action",
    "ActionKind",
    "Actor",
    "AddCustomer",
    "ApprovalRequest",
    "ApprovalStatus",
    "Clock",
    "DeterministicClock",
    "IntentClassifier",
    "InventoryFilters",
    "LedgerEntryInfo",
    "PackageSummary",
    "ParsedIntent",
    "RecordPayment",
    "ReturnPackage",
    "ReturnThan",
    "RiskAssessment",
    "RiskLevel",
    "Role",
    "RoleGatedPolicy",
    "SellBatch",
    "SellPackage",
    "SellThan",
    "StockSummary",
    "SystemClock",
    "ThanInfo",
    "ThanStatus",
    "ThresholdPolicy",
    "TransferBatch",
    "TransferPackage",
    "TransferThan",
    "TrialBalanceRow",
    "UpdatePrice",
    "action_from_payload",
    "build_action",
    "evaluate",
]
