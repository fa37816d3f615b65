"""
Action types (``textile_kernel.domain.actions``).

Responsibility
--------------
The closed set of write actions an operator can request, as a tagged
union of frozen dataclasses.  Every action serializes to a plain dict
carrying a ``kind`` tag (``to_payload``) and is reconstructed from one
(``action_from_payload``).  The approval queue stores exactly this
payload, so replay after approval works on typed fields and never on
guessed dict shapes.

Architecture position
---------------------
Kernel domain layer.  ZERO I/O.  May import from ``domain/inventory``
and ``utils/hashing`` only.

Invariants enforced
-------------------
* ``action_from_payload(a.to_payload()) == a`` for every action.
* Unknown kinds raise ``UnknownActionError``.
* Money and yard values are ``Decimal`` and serialize as strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Union

from textile_kernel.domain.inventory import InventoryFilters
from textile_kernel.exceptions import InvalidAmountError, UnknownActionError
from textile_kernel.utils.hashing import hash_payload


class ActionKind(str, Enum):
    """Tags of the supported write actions."""

    SELL_THAN = "sell_than"
    SELL_PACKAGE = "sell_package"
    SELL_BATCH = "sell_batch"
    RETURN_THAN = "return_than"
    RETURN_PACKAGE = "return_package"
    TRANSFER_THAN = "transfer_than"
    TRANSFER_PACKAGE = "transfer_package"
    TRANSFER_BATCH = "transfer_batch"
    UPDATE_PRICE = "update_price"
    RECORD_PAYMENT = "record_payment"
    ADD_CUSTOMER = "add_customer"


def to_decimal(value: Any, field: str) -> Decimal:
    """Parse ``value`` as a Decimal, raising InvalidAmountError on garbage."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(field, value) from None


class _ActionMixin(ABC):
    """Shared serialization helpers for action dataclasses."""

    kind: ClassVar[ActionKind]

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value}
        payload.update(self._fields_payload())
        return payload

    @abstractmethod
    def _fields_payload(self) -> dict[str, Any]:
        """Action fields, JSON-safe, without the kind tag."""

    def fingerprint(self) -> str:
        """Stable hash of the action's content."""
        return hash_payload(self.to_payload())

    @property
    def package_nos(self) -> tuple[str, ...]:
        """Packages touched by this action (empty for non-inventory actions)."""
        return ()


@dataclass(frozen=True)
class SellThan(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.SELL_THAN

    package_no: str
    than_no: int
    customer: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_no": self.package_no, "than_no": self.than_no, "customer": self.customer}

    def summary(self) -> str:
        return f"Sell than {self.than_no} from pkg {self.package_no} to {self.customer}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class SellPackage(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.SELL_PACKAGE

    package_no: str
    customer: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_no": self.package_no, "customer": self.customer}

    def summary(self) -> str:
        return f"Sell package {self.package_no} to {self.customer}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class SellBatch(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.SELL_BATCH

    package_nos_: tuple[str, ...]
    customer: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_nos": list(self.package_nos_), "customer": self.customer}

    def summary(self) -> str:
        return f"Sell packages {', '.join(self.package_nos_)} to {self.customer}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return self.package_nos_


@dataclass(frozen=True)
class ReturnThan(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.RETURN_THAN

    package_no: str
    than_no: int

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_no": self.package_no, "than_no": self.than_no}

    def summary(self) -> str:
        return f"Return than {self.than_no} from pkg {self.package_no}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class ReturnPackage(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.RETURN_PACKAGE

    package_no: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_no": self.package_no}

    def summary(self) -> str:
        return f"Return package {self.package_no}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class TransferThan(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.TRANSFER_THAN

    package_no: str
    than_no: int
    to_warehouse: str

    def _fields_payload(self) -> dict[str, Any]:
        return {
            "package_no": self.package_no,
            "than_no": self.than_no,
            "to_warehouse": self.to_warehouse,
        }

    def summary(self) -> str:
        return f"Transfer than {self.than_no} from pkg {self.package_no} to {self.to_warehouse}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class TransferPackage(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.TRANSFER_PACKAGE

    package_no: str
    to_warehouse: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_no": self.package_no, "to_warehouse": self.to_warehouse}

    def summary(self) -> str:
        return f"Transfer package {self.package_no} to {self.to_warehouse}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return (self.package_no,)


@dataclass(frozen=True)
class TransferBatch(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.TRANSFER_BATCH

    package_nos_: tuple[str, ...]
    to_warehouse: str

    def _fields_payload(self) -> dict[str, Any]:
        return {"package_nos": list(self.package_nos_), "to_warehouse": self.to_warehouse}

    def summary(self) -> str:
        return f"Transfer packages {', '.join(self.package_nos_)} to {self.to_warehouse}"

    @property
    def package_nos(self) -> tuple[str, ...]:
        return self.package_nos_


@dataclass(frozen=True)
class UpdatePrice(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.UPDATE_PRICE

    filters: InventoryFilters
    price: Decimal

    def _fields_payload(self) -> dict[str, Any]:
        return {"filters": self.filters.to_dict(), "price": str(self.price)}

    def summary(self) -> str:
        return f"Update price of {self.filters.label()} to {self.price}/yd"


@dataclass(frozen=True)
class RecordPayment(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.RECORD_PAYMENT

    customer: str
    amount: Decimal
    method: str = "cash"

    def _fields_payload(self) -> dict[str, Any]:
        return {"customer": self.customer, "amount": str(self.amount), "method": self.method}

    def summary(self) -> str:
        return f"Record payment {self.amount} from {self.customer} via {self.method}"


@dataclass(frozen=True)
class AddCustomer(_ActionMixin):
    kind: ClassVar[ActionKind] = ActionKind.ADD_CUSTOMER

    name: str
    phone: str = ""
    address: str = ""
    category: str = "Retail"
    credit_limit: Decimal = Decimal("0")
    payment_terms: str = "COD"
    notes: str = ""

    def _fields_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "category": self.category,
            "credit_limit": str(self.credit_limit),
            "payment_terms": self.payment_terms,
            "notes": self.notes,
        }

    def summary(self) -> str:
        return f"Add customer {self.name}"


Action = Union[
    SellThan,
    SellPackage,
    SellBatch,
    ReturnThan,
    ReturnPackage,
    TransferThan,
    TransferPackage,
    TransferBatch,
    UpdatePrice,
    RecordPayment,
    AddCustomer,
]


def action_from_payload(payload: dict[str, Any]) -> Action:
    """
    Rebuild a typed action from its serialized payload.

    Raises:
        UnknownActionError: If ``payload['kind']`` is not a supported kind.
        KeyError: If a required field is missing from the payload.
    """
    raw_kind = payload.get("kind")
    try:
        kind = ActionKind(raw_kind)
    except ValueError:
        raise UnknownActionError(str(raw_kind)) from None

    if kind is ActionKind.SELL_THAN:
        return SellThan(str(payload["package_no"]), int(payload["than_no"]), payload["customer"])
    if kind is ActionKind.SELL_PACKAGE:
        return SellPackage(str(payload["package_no"]), payload["customer"])
    if kind is ActionKind.SELL_BATCH:
        return SellBatch(tuple(str(p) for p in payload["package_nos"]), payload["customer"])
    if kind is ActionKind.RETURN_THAN:
        return ReturnThan(str(payload["package_no"]), int(payload["than_no"]))
    if kind is ActionKind.RETURN_PACKAGE:
        return ReturnPackage(str(payload["package_no"]))
    if kind is ActionKind.TRANSFER_THAN:
        return TransferThan(
            str(payload["package_no"]), int(payload["than_no"]), payload["to_warehouse"],
        )
    if kind is ActionKind.TRANSFER_PACKAGE:
        return TransferPackage(str(payload["package_no"]), payload["to_warehouse"])
    if kind is ActionKind.TRANSFER_BATCH:
        return TransferBatch(tuple(str(p) for p in payload["package_nos"]), payload["to_warehouse"])
    if kind is ActionKind.UPDATE_PRICE:
        return UpdatePrice(
            InventoryFilters.from_dict(payload.get("filters")),
            to_decimal(payload["price"], "price"),
        )
    if kind is ActionKind.RECORD_PAYMENT:
        return RecordPayment(
            payload["customer"],
            to_decimal(payload["amount"], "amount"),
            payload.get("method") or "cash",
        )
    return AddCustomer(
        name=payload["name"],
        phone=payload.get("phone", ""),
        address=payload.get("address", ""),
        category=payload.get("category", "Retail"),
        credit_limit=to_decimal(payload.get("credit_limit", "0"), "credit_limit"),
        payment_terms=payload.get("payment_terms", "COD"),
        notes=payload.get("notes", ""),
    )
