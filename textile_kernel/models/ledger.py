"""
Module: textile_kernel.models.ledger
Responsibility: ORM persistence for the chart of accounts and the
    double-entry ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ DTOs only.

Invariants enforced:
    - Exactly one of debit/credit is positive on every row (check
      constraint).
    - Ledger rows are append-only (db/immutability.py).
    - Balance per txn_id is checked by LedgerPostingService before flush.

Audit relevance:
    Ledger rows are the authoritative financial record of sales, returns
    and payments.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base
from textile_kernel.domain.ledger import LedgerEntryInfo


class Account(Base):
    """Chart-of-accounts row."""

    __tablename__ = "chart_of_accounts"

    __table_args__ = (
        UniqueConstraint("account_code", name="uq_chart_of_accounts_code"),
    )

    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Account {self.account_code} {self.account_name}>"


class LedgerEntry(Base):
    """One side of a balanced posting."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("entry_id", name="uq_ledger_entries_entry_id"),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_ledger_entries_one_side",
        ),
        Index("idx_ledger_entries_txn", "txn_id"),
        Index("idx_ledger_entries_date", "entry_date"),
        Index("idx_ledger_entries_account", "account_code"),
    )

    entry_id: Mapped[str] = mapped_column(String(50), nullable=False)
    txn_id: Mapped[str] = mapped_column(String(50), nullable=False)
    entry_date: Mapped[str] = mapped_column(String(10), nullable=False)
    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    ledger_name: Mapped[str] = mapped_column(String(100), nullable=False)
    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    narration: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerEntry {self.entry_id} {self.ledger_name} dr={self.debit} cr={self.credit}>"

    def to_dto(self) -> LedgerEntryInfo:
        return LedgerEntryInfo(
            entry_id=self.entry_id,
            txn_id=self.txn_id,
            entry_date=self.entry_date,
            account_code=self.account_code,
            ledger_name=self.ledger_name,
            debit=Decimal(self.debit),
            credit=Decimal(self.credit),
            narration=self.narration,
            created_by=self.created_by,
            created_at=self.created_at,
        )
