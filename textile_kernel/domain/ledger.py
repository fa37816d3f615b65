"""
Ledger domain types (``textile_kernel.domain.ledger``).

Responsibility
--------------
Pure value objects for double-entry posting: the default chart of
accounts, the side of a line, the balanced pair that every posting
produces, and the read-side trial balance row.

Invariants enforced
-------------------
* A ``PostingPair`` always has one debit line and one credit line of the
  same positive amount, so every txn_id balances by construction.
* ``LedgerLine.amount`` is strictly positive; the side carries the sign.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class AccountType(str, Enum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class LedgerSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class AccountDef:
    """Chart-of-accounts entry."""

    code: str
    name: str
    account_type: AccountType


CASH = AccountDef("1001", "Cash", AccountType.ASSET)
BANK = AccountDef("1002", "Bank", AccountType.ASSET)
CUSTOMER_RECEIVABLE = AccountDef("1100", "Customer Receivable", AccountType.ASSET)
SALES_REVENUE = AccountDef("3001", "Sales Revenue", AccountType.REVENUE)

DEFAULT_ACCOUNTS: tuple[AccountDef, ...] = (CASH, BANK, CUSTOMER_RECEIVABLE, SALES_REVENUE)


def settlement_account(method: str | None) -> AccountDef:
    """Bank when the payment method mentions a bank, otherwise Cash."""
    if method and "bank" in method.lower():
        return BANK
    return CASH


@dataclass(frozen=True)
class LedgerLine:
    account: AccountDef
    side: LedgerSide
    amount: Decimal

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Ledger line amount must be positive, got {self.amount}")


@dataclass(frozen=True)
class PostingPair:
    """One balanced debit/credit pair for a single txn_id."""

    txn_id: str
    debit: LedgerLine
    credit: LedgerLine
    narration: str

    @classmethod
    def of(
        cls,
        txn_id: str,
        debit_account: AccountDef,
        credit_account: AccountDef,
        amount: Decimal,
        narration: str,
    ) -> PostingPair:
        return cls(
            txn_id=txn_id,
            debit=LedgerLine(debit_account, LedgerSide.DEBIT, amount),
            credit=LedgerLine(credit_account, LedgerSide.CREDIT, amount),
            narration=narration,
        )


@dataclass(frozen=True)
class LedgerEntryInfo:
    """Immutable snapshot of a posted ledger row."""

    entry_id: str
    txn_id: str
    entry_date: str
    account_code: str
    ledger_name: str
    debit: Decimal
    credit: Decimal
    narration: str
    created_by: str
    created_at: datetime


@dataclass(frozen=True)
class TrialBalanceRow:
    account_code: str
    account_name: str
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        return self.total_debit - self.total_credit
