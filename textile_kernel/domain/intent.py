"""
Parsed intents (``textile_kernel.domain.intent``).

The natural-language classifier lives outside the kernel.  It hands the
kernel a ``ParsedIntent``: an action name, whatever slots it could fill,
a confidence score and an optional clarification prompt.  This module
turns a trusted intent into a typed action, raising ``MissingSlotError``
with the corrective prompt an operator should see when a slot is absent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

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
)
from textile_kernel.domain.inventory import InventoryFilters
from textile_kernel.exceptions import MissingSlotError, UnknownActionError

CONFIDENCE_THRESHOLD = 0.75

READ_INTENTS = frozenset({
    "check",
    "list_packages",
    "package_detail",
    "check_customer",
    "check_balance",
    "trial_balance",
    "show_ledger",
})

ADMIN_ONLY_READS = frozenset({"trial_balance", "show_ledger"})


@dataclass(frozen=True)
class ParsedIntent:
    """Classifier output.  Every slot is optional."""

    action: str
    confidence: float = 1.0
    clarification: str | None = None
    design: str | None = None
    shade: str | None = None
    warehouse: str | None = None
    package_no: str | None = None
    package_nos: tuple[str, ...] = field(default_factory=tuple)
    than_no: int | None = None
    customer: str | None = None
    price: Decimal | None = None
    amount: Decimal | None = None
    method: str | None = None
    phone: str | None = None
    address: str | None = None
    category: str | None = None
    credit_limit: Decimal | None = None
    payment_terms: str | None = None

    def is_trusted(self, threshold: float = CONFIDENCE_THRESHOLD) -> bool:
        return self.confidence >= threshold

    @property
    def is_read(self) -> bool:
        return self.action in READ_INTENTS

    def filters(self) -> InventoryFilters:
        return InventoryFilters(
            design=self.design,
            shade=self.shade,
            warehouse=self.warehouse,
            package_no=self.package_no,
        )


class IntentClassifier(Protocol):
    """Turns free text into a ParsedIntent."""

    def parse(self, text: str) -> ParsedIntent: ...


def _require(value, slot: str, prompt: str):
    if value is None or value == "" or value == ():
        raise MissingSlotError(slot, prompt)
    return value


def build_action(intent: ParsedIntent) -> Action:
    """
    Map a trusted write intent to a typed action.

    Raises:
        MissingSlotError: A required slot is empty; ``prompt`` says what to ask.
        UnknownActionError: The intent names no known write action.
    """
    try:
        kind = ActionKind(intent.action)
    except ValueError:
        raise UnknownActionError(intent.action) from None

    if kind is ActionKind.SELL_THAN:
        example = 'e.g. "Sell than 3 from package 5801 to Ibrahim"'
        return SellThan(
            _require(intent.package_no, "package_no", f"Which package? {example}"),
            _require(intent.than_no, "than_no", f"Which than number? {example}"),
            _require(intent.customer, "customer", f"Who is the customer? {example}"),
        )
    if kind is ActionKind.SELL_PACKAGE:
        example = 'e.g. "Sell package 5801 to Adamu"'
        return SellPackage(
            _require(intent.package_no, "package_no", f"Which package? {example}"),
            _require(intent.customer, "customer", f"Who is the customer? {example}"),
        )
    if kind is ActionKind.SELL_BATCH:
        return SellBatch(
            tuple(_require(
                intent.package_nos, "package_nos",
                'Which packages? e.g. "Sell packages 5801, 5802, 5803 to Ibrahim"',
            )),
            _require(intent.customer, "customer", "Who is the customer?"),
        )
    if kind is ActionKind.RETURN_THAN:
        return ReturnThan(
            _require(
                intent.package_no, "package_no",
                'Which package? e.g. "Return than 2 from package 5801"',
            ),
            _require(intent.than_no, "than_no", "Which than number?"),
        )
    if kind is ActionKind.RETURN_PACKAGE:
        return ReturnPackage(
            _require(intent.package_no, "package_no", 'Which package? e.g. "Return package 5801"'),
        )
    if kind is ActionKind.TRANSFER_THAN:
        example = 'e.g. "Transfer than 3 from package 5801 to Kano"'
        return TransferThan(
            _require(intent.package_no, "package_no", f"Which package? {example}"),
            _require(intent.than_no, "than_no", "Which than number?"),
            _require(intent.warehouse, "warehouse", f"To which warehouse? {example}"),
        )
    if kind is ActionKind.TRANSFER_PACKAGE:
        return TransferPackage(
            _require(
                intent.package_no, "package_no",
                'Which package? e.g. "Transfer package 5801 to Kano"',
            ),
            _require(intent.warehouse, "warehouse", "To which warehouse?"),
        )
    if kind is ActionKind.TRANSFER_BATCH:
        return TransferBatch(
            tuple(_require(
                intent.package_nos, "package_nos",
                'Which packages? e.g. "Transfer packages 5801, 5802, 5803 to Kano"',
            )),
            _require(intent.warehouse, "warehouse", "To which warehouse?"),
        )
    if kind is ActionKind.UPDATE_PRICE:
        price = _require(intent.price, "price", "What is the new price per yard?")
        if not intent.package_no and not intent.design:
            raise MissingSlotError(
                "filters", 'Which package or design? e.g. "Update price of 44200 BLACK to 1500"',
            )
        filters = InventoryFilters(
            design=intent.design, shade=intent.shade, package_no=intent.package_no,
        )
        return UpdatePrice(filters, Decimal(price))
    if kind is ActionKind.RECORD_PAYMENT:
        customer = _require(intent.customer, "customer", "From which customer?")
        amount = intent.amount if intent.amount is not None else intent.price
        amount = _require(
            amount, "amount", 'How much was paid? e.g. "Record payment 50000 from Ibrahim via bank"',
        )
        return RecordPayment(customer, Decimal(amount), intent.method or "cash")

    name = _require(
        intent.customer, "customer",
        'Customer name is required. e.g. "Add customer Ibrahim, phone +234..."',
    )
    return AddCustomer(
        name=name,
        phone=intent.phone or "",
        address=intent.address or "",
        category=intent.category or "Retail",
        credit_limit=Decimal(intent.credit_limit or 0),
        payment_terms=intent.payment_terms or "COD",
    )
