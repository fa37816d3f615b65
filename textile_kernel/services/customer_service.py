"""
CustomerService -- customer records and outstanding balances.

Responsibility:
    Lookup by id or (case-insensitive) name, lazy creation on first sale,
    explicit creation, and the outstanding balance that sales, returns
    and payments move.

Invariants enforced:
    - One customer per case-insensitive name.
    - outstanding_balance never goes below zero; a payment larger than
      the balance floors it at zero.
    - Balance writes go through the versioned row, so a concurrent
      change raises StaleDataError at flush and the orchestrator retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select

from textile_kernel.exceptions import CustomerNotFoundError, InvalidAmountError, MissingSlotError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import Customer
from textile_kernel.services.base import BaseService
from textile_kernel.services.sequence_service import SequenceService

logger = get_logger("services.customer")


@dataclass(frozen=True)
class CustomerInfo:
    customer_id: str
    name: str
    phone: str
    address: str
    category: str
    credit_limit: Decimal
    outstanding_balance: Decimal
    payment_terms: str
    notes: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class AddCustomerResult:
    """``status`` is "created" or "exists"."""

    status: str
    customer: CustomerInfo


@dataclass(frozen=True)
class PaymentResult:
    customer: str
    paid: Decimal
    previous_balance: Decimal
    new_balance: Decimal


def _key(name: str) -> str:
    return name.strip().lower()


class CustomerService(BaseService):
    """Customer CRUD and balance movement."""

    def _to_info(self, row: Customer) -> CustomerInfo:
        return CustomerInfo(
            customer_id=row.customer_id,
            name=row.name,
            phone=row.phone,
            address=row.address,
            category=row.category,
            credit_limit=Decimal(row.credit_limit),
            outstanding_balance=Decimal(row.outstanding_balance),
            payment_terms=row.payment_terms,
            notes=row.notes,
            status=row.status,
            created_at=row.created_at,
        )

    def _find_row(self, name_or_id: str) -> Customer | None:
        value = (name_or_id or "").strip()
        if not value:
            return None
        return self.session.execute(
            select(Customer).where(
                or_(Customer.customer_id == value, Customer.name_key == _key(value))
            )
        ).scalar_one_or_none()

    def _require_row(self, name_or_id: str) -> Customer:
        row = self._find_row(name_or_id)
        if row is None:
            raise CustomerNotFoundError(name_or_id)
        return row

    def get_customer(self, name_or_id: str) -> CustomerInfo | None:
        row = self._find_row(name_or_id)
        return self._to_info(row) if row is not None else None

    def list_customers(self) -> list[CustomerInfo]:
        rows = self.session.execute(select(Customer).order_by(Customer.name_key)).scalars()
        return [self._to_info(r) for r in rows]

    def search_customers(self, query: str) -> list[CustomerInfo]:
        rows = self.session.execute(
            select(Customer)
            .where(Customer.name_key.contains(_key(query)))
            .order_by(Customer.name_key)
        ).scalars()
        return [self._to_info(r) for r in rows]

    def _create(
        self,
        name: str,
        phone: str = "",
        address: str = "",
        category: str = "Retail",
        credit_limit: Decimal = Decimal("0"),
        payment_terms: str = "COD",
        notes: str = "",
    ) -> Customer:
        row = Customer(
            customer_id=SequenceService(self.session).next_id(SequenceService.CUSTOMER, self.clock),
            name=name.strip(),
            name_key=_key(name),
            phone=phone,
            address=address,
            category=category or "Retail",
            credit_limit=Decimal(credit_limit or 0),
            outstanding_balance=Decimal("0"),
            payment_terms=payment_terms or "COD",
            notes=notes,
            status="active",
            created_at=self.clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "customer_created",
            extra={"customer_id": row.customer_id, "customer_name": row.name},
        )
        return row

    def find_or_create(self, name: str) -> CustomerInfo:
        """Existing customer by name, or a new Retail/COD one."""
        row = self._find_row(name)
        if row is None:
            row = self._create(name)
        return self._to_info(row)

    def add_customer(
        self,
        name: str,
        phone: str = "",
        address: str = "",
        category: str = "Retail",
        credit_limit: Decimal = Decimal("0"),
        payment_terms: str = "COD",
        notes: str = "",
    ) -> AddCustomerResult:
        """
        Create a customer unless one with the same name exists.

        Raises:
            MissingSlotError: ``name`` is blank.
        """
        if not (name or "").strip():
            raise MissingSlotError(
                "customer", 'Customer name is required. e.g. "Add customer Ibrahim, phone +234..."',
            )
        existing = self._find_row(name)
        if existing is not None:
            return AddCustomerResult("exists", self._to_info(existing))
        row = self._create(
            name, phone, address, category, credit_limit, payment_terms, notes,
        )
        return AddCustomerResult("created", self._to_info(row))

    def add_to_outstanding(self, name: str, amount: Decimal) -> CustomerInfo:
        """Raise the balance by a sale amount (creating the customer if needed)."""
        row = self._find_row(name) or self._create(name)
        row.outstanding_balance = Decimal(row.outstanding_balance) + Decimal(amount)
        row.updated_at = self.clock.now()
        self.session.flush()
        return self._to_info(row)

    def reduce_outstanding(self, name: str, amount: Decimal) -> CustomerInfo | None:
        """Lower the balance by a return amount, floored at zero."""
        row = self._find_row(name)
        if row is None:
            return None
        row.outstanding_balance = max(
            Decimal("0"), Decimal(row.outstanding_balance) - Decimal(amount),
        )
        row.updated_at = self.clock.now()
        self.session.flush()
        return self._to_info(row)

    def record_payment(self, name: str, amount: Decimal) -> PaymentResult:
        """
        Apply a payment to the outstanding balance.

        Raises:
            InvalidAmountError: ``amount`` is not positive.
            CustomerNotFoundError: No such customer.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidAmountError("amount", amount)
        row = self._require_row(name)
        previous = Decimal(row.outstanding_balance)
        row.outstanding_balance = max(Decimal("0"), previous - amount)
        row.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "customer_payment_applied",
            extra={
                "customer_id": row.customer_id,
                "amount": str(amount),
                "previous_balance": str(previous),
                "new_balance": str(row.outstanding_balance),
            },
        )
        return PaymentResult(row.name, amount, previous, Decimal(row.outstanding_balance))
