"""
LedgerPostingService: balanced pairs, one posting per txn_id, trial
balance and daybook.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from textile_kernel.domain.ledger import (
    CASH,
    CUSTOMER_RECEIVABLE,
    LedgerLine,
    LedgerSide,
    PostingPair,
)
from textile_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidAmountError,
    UnbalancedEntryError,
)
from textile_kernel.models.ledger import LedgerEntry
from textile_kernel.services.ledger_posting import LedgerPostingService


@pytest.fixture
def ledger(session, deterministic_clock):
    return LedgerPostingService(session, deterministic_clock)


class TestSalePosting:
    def test_sale_posts_balanced_pair(self, ledger):
        entries = ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1", "200")
        assert len(entries) == 2
        debit, credit = entries
        assert debit.account_code == "1100"
        assert debit.debit == Decimal("8000")
        assert credit.account_code == "3001"
        assert credit.credit == Decimal("8000")
        assert {e.txn_id for e in entries} == {"TXN-1"}
        assert debit.entry_id.startswith("LE-20240315-")

    def test_amount_override(self, ledger):
        entries = ledger.record_sale(
            "Ibrahim", Decimal("30"), Decimal("1000"), "TXN-1", amount=Decimal("31500"),
        )
        assert entries[0].debit == Decimal("31500")

    def test_zero_amount_posts_nothing(self, ledger):
        assert ledger.record_sale("Ibrahim", Decimal("10"), Decimal("0"), "TXN-1") == []
        assert ledger.get_trial_balance() == []

    def test_negative_amount_rejected(self, ledger):
        with pytest.raises(InvalidAmountError):
            ledger.record_sale("Ibrahim", Decimal("1"), Decimal("1"), "TXN-1", amount=Decimal("-5"))

    def test_same_txn_posts_once(self, ledger):
        first = ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        second = ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        assert [e.entry_id for e in first] == [e.entry_id for e in second]
        assert len(ledger.entries_for_txn("TXN-1")) == 2


class TestReturnAndPayment:
    def test_return_reverses_sale(self, ledger):
        ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        ledger.record_return("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-2")
        assert ledger.get_ledger_balance("1100") == Decimal("0")
        assert ledger.get_ledger_balance("3001") == Decimal("0")

    def test_bank_payment(self, ledger):
        entries = ledger.record_payment_received("Ibrahim", Decimal("5000"), "bank", "TXN-3")
        assert entries[0].account_code == "1002"
        assert entries[1].account_code == "1100"

    def test_cash_payment(self, ledger):
        entries = ledger.record_payment_received("Ibrahim", Decimal("5000"), "cash", "TXN-3")
        assert entries[0].account_code == CASH.code


class TestBalanceInvariant:
    def test_trial_balance_totals_match(self, ledger):
        ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        ledger.record_sale("Adamu", Decimal("10"), Decimal("1500"), "TXN-2")
        ledger.record_payment_received("Ibrahim", Decimal("3000"), "cash", "TXN-3")
        rows = ledger.get_trial_balance()
        assert sum(r.total_debit for r in rows) == sum(r.total_credit for r in rows)
        receivable = next(r for r in rows if r.account_code == "1100")
        assert receivable.balance == Decimal("20000")

    def test_unbalanced_pair_rejected(self, ledger):
        pair = PostingPair(
            "TXN-X",
            LedgerLine(CUSTOMER_RECEIVABLE, LedgerSide.DEBIT, Decimal("10")),
            LedgerLine(CASH, LedgerSide.CREDIT, Decimal("9")),
            "broken",
        )
        with pytest.raises(UnbalancedEntryError):
            ledger.post(pair, "test")

    def test_daybook(self, ledger):
        ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        assert len(ledger.get_daybook()) == 2
        assert ledger.get_daybook("2024-03-14") == []

    def test_entries_are_append_only(self, ledger, session):
        ledger.record_sale("Ibrahim", Decimal("8"), Decimal("1000"), "TXN-1")
        row = session.execute(select(LedgerEntry).limit(1)).scalar_one()
        row.narration = "edited"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
