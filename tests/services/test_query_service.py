"""
QueryService reply texts and the admin-only ledger reads.
"""

from decimal import Decimal

import pytest

from textile_kernel.domain.actions import SellThan
from textile_kernel.domain.intent import ParsedIntent
from textile_kernel.domain.inventory import InventoryFilters
from textile_kernel.exceptions import MissingSlotError, PermissionDeniedError, UnknownActionError
from textile_kernel.services.action_executor import ActionExecutor
from textile_kernel.services.customer_service import CustomerService
from textile_kernel.services.query_service import QueryService


@pytest.fixture
def queries(stocked_session, deterministic_clock):
    return QueryService(stocked_session, deterministic_clock)


class TestStock:
    def test_check_stock_by_design_and_shade(self, queries):
        reply = queries.check_stock(InventoryFilters(design="44200", shade="BLACK"))
        assert reply.text == (
            "Design: 44200, Shade: BLACK\n"
            "Available: 30 yards across 3 thans in 1 packages\n"
            "Value: NGN 30,000"
        )

    def test_check_all_stock(self, queries):
        reply = queries.answer(ParsedIntent("check"), None)
        assert reply.text.startswith("All stock\nAvailable: 100 yards across 6 thans in 3 packages")
        assert reply.data.total_value == Decimal("114000")

    def test_nothing_matches(self, queries):
        reply = queries.check_stock(InventoryFilters(design="99999"))
        assert reply.text.endswith("No available stock matching these filters.")

    def test_list_packages(self, queries):
        reply = queries.list_packages("44200")
        assert "Pkg 5801 (Lagos): 3/3 thans avail, 30 yds" in reply.text
        assert reply.text.endswith("Total available: 70 yards")

    def test_list_packages_needs_design(self, queries):
        with pytest.raises(MissingSlotError) as exc:
            queries.list_packages(None)
        assert exc.value.user_message.startswith("Which design?")

    def test_package_detail_after_sale(self, stocked_session, deterministic_clock, queries):
        ActionExecutor(stocked_session, deterministic_clock).apply(
            SellThan("5801", 2, "Ibrahim"), "100", "TXN-1",
        )
        reply = queries.package_detail("5801")
        assert "Indent: IND-7 | Warehouse: Lagos" in reply.text
        assert "[sold] Than 2: 12 yds -> Ibrahim (2024-03-15)" in reply.text
        assert reply.text.endswith("Available: 18 yds | Sold: 12 yds")

    def test_package_not_found(self, queries):
        assert queries.package_detail("0000").text == "Package 0000 not found."


class TestCustomers:
    def test_balance(self, stocked_session, deterministic_clock, queries):
        CustomerService(stocked_session, deterministic_clock).add_customer(
            "Ibrahim", credit_limit=Decimal("500000"),
        )
        reply = queries.answer(ParsedIntent("check_balance", customer="ibrahim"), None)
        assert reply.text == "Ibrahim: Outstanding balance NGN 0 (limit: NGN 500,000)"

    def test_unknown_customer(self, queries):
        assert queries.check_customer("Nobody").text == 'Customer "Nobody" not found.'


class TestLedgerReads:
    def test_trial_balance_admin_only(self, queries, employee):
        with pytest.raises(PermissionDeniedError) as exc:
            queries.trial_balance(employee)
        assert exc.value.user_message == "Only admins can view the trial balance."

    def test_empty_trial_balance(self, queries, admin):
        assert queries.trial_balance(admin).text == "No ledger entries yet."

    def test_trial_balance_and_daybook(self, stocked_session, deterministic_clock, queries, admin):
        ActionExecutor(stocked_session, deterministic_clock).apply(
            SellThan("5801", 1, "Ibrahim"), "100", "TXN-1",
        )
        balance = queries.trial_balance(admin).text
        assert balance.startswith("Trial Balance")
        assert balance.endswith("Totals: DR NGN 10,000 | CR NGN 10,000")

        ledger = queries.answer(ParsedIntent("show_ledger"), admin)
        assert ledger.text.startswith("Ledger - 2024-03-15")
        assert len(ledger.data) == 2

    def test_ledger_denied_to_employee(self, queries, employee):
        with pytest.raises(PermissionDeniedError):
            queries.show_ledger(employee)

    def test_write_intent_is_not_a_query(self, queries, admin):
        with pytest.raises(UnknownActionError):
            queries.answer(ParsedIntent("sell"), admin)
