"""
CustomerService: creation, lookup and outstanding balance movement.
"""

from decimal import Decimal

import pytest

from textile_kernel.exceptions import CustomerNotFoundError, InvalidAmountError, MissingSlotError
from textile_kernel.services.customer_service import CustomerService


@pytest.fixture
def customers(session, deterministic_clock):
    return CustomerService(session, deterministic_clock)


class TestCreate:
    def test_add_customer(self, customers):
        result = customers.add_customer(
            "Ibrahim", phone="+2348000", category="Wholesale", credit_limit=Decimal("500000"),
        )
        assert result.status == "created"
        assert result.customer.customer_id == "CUST-20240315-001"
        assert result.customer.category == "Wholesale"
        assert result.customer.outstanding_balance == Decimal("0")

    def test_duplicate_name_reports_existing(self, customers):
        first = customers.add_customer("Ibrahim")
        second = customers.add_customer("  ibrahim ")
        assert second.status == "exists"
        assert second.customer.customer_id == first.customer.customer_id

    def test_blank_name(self, customers):
        with pytest.raises(MissingSlotError):
            customers.add_customer("   ")

    def test_lookup_by_id_or_name(self, customers):
        created = customers.add_customer("Ibrahim").customer
        assert customers.get_customer(created.customer_id).name == "Ibrahim"
        assert customers.get_customer("IBRAHIM").customer_id == created.customer_id
        assert customers.get_customer("Nobody") is None

    def test_find_or_create_defaults(self, customers):
        info = customers.find_or_create("Adamu")
        assert info.category == "Retail"
        assert info.payment_terms == "COD"
        assert customers.find_or_create("adamu").customer_id == info.customer_id

    def test_search(self, customers):
        customers.add_customer("Ibrahim Musa")
        customers.add_customer("Adamu")
        assert [c.name for c in customers.search_customers("musa")] == ["Ibrahim Musa"]
        assert len(customers.list_customers()) == 2


class TestBalances:
    def test_sale_then_payment(self, customers):
        customers.add_to_outstanding("Ibrahim", Decimal("30000"))
        paid = customers.record_payment("Ibrahim", Decimal("10000"))
        assert paid.previous_balance == Decimal("30000")
        assert paid.new_balance == Decimal("20000")

    def test_payment_floors_at_zero(self, customers):
        customers.add_to_outstanding("Ibrahim", Decimal("5000"))
        paid = customers.record_payment("Ibrahim", Decimal("8000"))
        assert paid.new_balance == Decimal("0")

    def test_payment_unknown_customer(self, customers):
        with pytest.raises(CustomerNotFoundError):
            customers.record_payment("Nobody", Decimal("1"))

    def test_payment_must_be_positive(self, customers):
        customers.add_customer("Ibrahim")
        with pytest.raises(InvalidAmountError):
            customers.record_payment("Ibrahim", Decimal("0"))

    def test_reduce_outstanding(self, customers):
        customers.add_to_outstanding("Ibrahim", Decimal("5000"))
        assert customers.reduce_outstanding("Ibrahim", Decimal("8000")).outstanding_balance == Decimal("0")
        assert customers.reduce_outstanding("Nobody", Decimal("1")) is None
