"""ORM models for the textile kernel."""

from textile_kernel.models.approval import ApprovalRequestModel
from textile_kernel.models.audit_event import AuditAction, AuditEvent
from textile_kernel.models.inventory import Customer, Than
from textile_kernel.models.ledger import Account, LedgerEntry
from textile_kernel.models.sequence import SequenceCounter
from textile_kernel.models.stock import StockBalance, StockMovement

__all__ = [
    "Account",
    "ApprovalRequestModel",
    "AuditAction",
    "AuditEvent",
    "Customer",
    "LedgerEntry",
    "SequenceCounter",
    "StockBalance",
    "StockMovement",
    "Than",
]
