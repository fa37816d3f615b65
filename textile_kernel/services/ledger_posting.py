"""
LedgerPostingService -- balanced double-entry pairs for sales, returns
and payments.

Responsibility:
    Turns a business event into exactly one debit/credit ``PostingPair``
    and persists both lines under one ``txn_id``.  Also answers the
    read-side questions: trial balance, account balance, daybook.

Architecture position:
    Kernel > Services.  Runs inside the orchestrator's mutation
    transaction, so a failed posting rolls back the inventory change.

Invariants enforced:
    - Per txn_id, sum(debit) == sum(credit); checked before flush.
    - A txn_id that already has entries is never posted again; the
      existing entries are returned instead.
    - A zero amount posts nothing.
    - Ledger rows are append-only (db/immutability.py).

Failure modes:
    - InvalidAmountError for a negative amount.
    - UnbalancedEntryError if a pair does not balance.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select

from textile_kernel.domain.ledger import (
    CUSTOMER_RECEIVABLE,
    DEFAULT_ACCOUNTS,
    SALES_REVENUE,
    AccountDef,
    AccountType,
    LedgerEntryInfo,
    PostingPair,
    TrialBalanceRow,
    settlement_account,
)
from textile_kernel.exceptions import InvalidAmountError, UnbalancedEntryError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.ledger import Account, LedgerEntry
from textile_kernel.services.base import BaseService
from textile_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger_posting")


class LedgerPostingService(BaseService):
    """Writer and reader of the double-entry ledger."""

    def _resolve(self, default: AccountDef) -> AccountDef:
        """Chart-of-accounts row by name, falling back to the default code."""
        row = self.session.execute(
            select(Account).where(
                func.lower(Account.account_name) == default.name.lower(),
                Account.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if row is None:
            return default
        return AccountDef(row.account_code, row.account_name, AccountType(row.account_type))

    def entries_for_txn(self, txn_id: str) -> list[LedgerEntryInfo]:
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.txn_id == txn_id)
            .order_by(LedgerEntry.entry_id)
        ).scalars()
        return [r.to_dto() for r in rows]

    def post(self, pair: PostingPair, created_by: str) -> list[LedgerEntryInfo]:
        """
        Persist a balanced pair.

        Returns:
            The two entries, or the entries already posted for this txn_id.
        """
        existing = self.entries_for_txn(pair.txn_id)
        if existing:
            logger.info("ledger_posting_skipped_existing", extra={"txn_id": pair.txn_id})
            return existing

        if pair.debit.amount != pair.credit.amount:
            raise UnbalancedEntryError(
                pair.txn_id, str(pair.debit.amount), str(pair.credit.amount),
            )

        sequences = SequenceService(self.session)
        now = self.clock.now()
        entry_date = self.clock.today_iso()
        rows = []
        for line in (pair.debit, pair.credit):
            is_debit = line is pair.debit
            rows.append(LedgerEntry(
                entry_id=sequences.next_id(SequenceService.LEDGER_ENTRY, self.clock),
                txn_id=pair.txn_id,
                entry_date=entry_date,
                account_code=line.account.code,
                ledger_name=line.account.name,
                debit=line.amount if is_debit else Decimal("0"),
                credit=Decimal("0") if is_debit else line.amount,
                narration=pair.narration,
                created_by=created_by,
                created_at=now,
            ))
        self.session.add_all(rows)
        self.session.flush()

        logger.info(
            "ledger_pair_posted",
            extra={
                "txn_id": pair.txn_id,
                "debit_account": pair.debit.account.code,
                "credit_account": pair.credit.account.code,
                "amount": str(pair.debit.amount),
            },
        )
        return [r.to_dto() for r in rows]

    @staticmethod
    def _amount(amount: Decimal, field: str) -> Decimal:
        amount = Decimal(amount)
        if amount < 0:
            raise InvalidAmountError(field, amount)
        return amount

    def record_sale(
        self,
        customer: str,
        yards: Decimal,
        price_per_yard: Decimal,
        txn_id: str,
        created_by: str = "",
        narration: str | None = None,
        amount: Decimal | None = None,
    ) -> list[LedgerEntryInfo]:
        """
        DR Customer Receivable / CR Sales Revenue for yards x price.

        ``amount`` overrides the product when the thans of one sale carry
        different prices.
        """
        if amount is None:
            amount = Decimal(yards) * Decimal(price_per_yard)
        amount = self._amount(amount, "amount")
        if amount == 0:
            return []
        pair = PostingPair.of(
            txn_id,
            self._resolve(CUSTOMER_RECEIVABLE),
            self._resolve(SALES_REVENUE),
            amount,
            narration or f"Sale to {customer}: {yards} yds @ {price_per_yard}",
        )
        return self.post(pair, created_by)

    def record_return(
        self,
        customer: str,
        yards: Decimal,
        price_per_yard: Decimal,
        txn_id: str,
        created_by: str = "",
        narration: str | None = None,
        amount: Decimal | None = None,
    ) -> list[LedgerEntryInfo]:
        """DR Sales Revenue / CR Customer Receivable; the reverse of a sale."""
        if amount is None:
            amount = Decimal(yards) * Decimal(price_per_yard)
        amount = self._amount(amount, "amount")
        if amount == 0:
            return []
        pair = PostingPair.of(
            txn_id,
            self._resolve(SALES_REVENUE),
            self._resolve(CUSTOMER_RECEIVABLE),
            amount,
            narration or f"Return from {customer or 'customer'}: {yards} yds @ {price_per_yard}",
        )
        return self.post(pair, created_by)

    def record_payment_received(
        self,
        customer: str,
        amount: Decimal,
        method: str,
        txn_id: str,
        created_by: str = "",
    ) -> list[LedgerEntryInfo]:
        """DR Bank or Cash / CR Customer Receivable."""
        amount = self._amount(amount, "amount")
        if amount == 0:
            return []
        pair = PostingPair.of(
            txn_id,
            self._resolve(settlement_account(method)),
            self._resolve(CUSTOMER_RECEIVABLE),
            amount,
            f"Payment from {customer} via {method}",
        )
        return self.post(pair, created_by)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_trial_balance(self) -> list[TrialBalanceRow]:
        """Per-account debit and credit totals, ordered by account code."""
        rows = self.session.execute(
            select(
                LedgerEntry.account_code,
                LedgerEntry.ledger_name,
                func.coalesce(func.sum(LedgerEntry.debit), 0),
                func.coalesce(func.sum(LedgerEntry.credit), 0),
            )
            .group_by(LedgerEntry.account_code, LedgerEntry.ledger_name)
            .order_by(LedgerEntry.account_code)
        ).all()
        return [
            TrialBalanceRow(
                account_code=code,
                account_name=name,
                total_debit=Decimal(str(debit)),
                total_credit=Decimal(str(credit)),
            )
            for code, name, debit, credit in rows
        ]

    def get_ledger_balance(self, account_code: str) -> Decimal:
        """Debits minus credits for one account."""
        debit, credit = self.session.execute(
            select(
                func.coalesce(func.sum(LedgerEntry.debit), 0),
                func.coalesce(func.sum(LedgerEntry.credit), 0),
            ).where(LedgerEntry.account_code == account_code)
        ).one()
        return Decimal(str(debit)) - Decimal(str(credit))

    def get_daybook(self, entry_date: str | None = None) -> list[LedgerEntryInfo]:
        """Entries posted on ``entry_date`` (YYYY-MM-DD, default today)."""
        entry_date = entry_date or self.clock.today_iso()
        rows = self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.entry_date == entry_date)
            .order_by(LedgerEntry.entry_id)
        ).scalars()
        return [r.to_dto() for r in rows]


def seed_chart_of_accounts(session) -> None:
    """Insert the default accounts that are missing."""
    existing = set(session.execute(select(Account.account_code)).scalars())
    for account in DEFAULT_ACCOUNTS:
        if account.code not in existing:
            session.add(Account(
                account_code=account.code,
                account_name=account.name,
                account_type=account.account_type.value,
                is_active=True,
            ))
    session.flush()
