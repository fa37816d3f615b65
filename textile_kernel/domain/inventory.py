"""
Inventory domain types (``textile_kernel.domain.inventory``).

Responsibility
--------------
Pure value objects for thans and the package views derived from them.
ZERO I/O.  The ORM model in ``models/inventory.py`` converts to these
DTOs; services and the orchestrator only hand DTOs to callers.

Invariants enforced
-------------------
* A than's status is one of ``ThanStatus``; the only transitions are
  available -> sold and sold -> available (``THAN_TRANSITIONS``).
* A package is never stored: ``PackageSummary.from_thans`` derives every
  aggregate on read.
* ``item_id`` is the stock-keeping key (DESIGN-SHADE, upper-cased).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class ThanStatus(str, Enum):
    """Lifecycle states of a than."""

    AVAILABLE = "available"
    SOLD = "sold"


THAN_TRANSITIONS: dict[ThanStatus, frozenset[ThanStatus]] = {
    ThanStatus.AVAILABLE: frozenset({ThanStatus.SOLD}),
    ThanStatus.SOLD: frozenset({ThanStatus.AVAILABLE}),
}


def can_transition(current: ThanStatus, target: ThanStatus) -> bool:
    """True if ``current -> target`` is a legal than transition."""
    return target in THAN_TRANSITIONS.get(current, frozenset())


def item_id(design: str | None, shade: str | None) -> str:
    """Stock-keeping key for a design/shade pair."""
    return f"{(design or '').strip()}-{(shade or '').strip()}".upper()


@dataclass(frozen=True)
class InventoryFilters:
    """Optional filters shared by stock queries and price updates."""

    design: str | None = None
    shade: str | None = None
    warehouse: str | None = None
    package_no: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.design or self.shade or self.warehouse or self.package_no)

    def label(self) -> str:
        parts = []
        if self.package_no:
            parts.append(f"package {self.package_no}")
        if self.design:
            parts.append(self.design)
        if self.shade:
            parts.append(self.shade)
        if self.warehouse:
            parts.append(f"in {self.warehouse}")
        return " ".join(parts) or "all stock"

    def to_dict(self) -> dict[str, str]:
        return {
            k: v
            for k, v in (
                ("design", self.design),
                ("shade", self.shade),
                ("warehouse", self.warehouse),
                ("package_no", self.package_no),
            )
            if v
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> InventoryFilters:
        data = data or {}
        return cls(
            design=data.get("design"),
            shade=data.get("shade"),
            warehouse=data.get("warehouse"),
            package_no=data.get("package_no"),
        )


@dataclass(frozen=True)
class ThanInfo:
    """Immutable snapshot of a than row."""

    package_no: str
    than_no: int
    design: str
    shade: str
    yards: Decimal
    status: ThanStatus
    warehouse: str
    price_per_yard: Decimal
    sold_to: str | None = None
    sold_date: str | None = None
    updated_at: datetime | None = None
    indent: str | None = None
    version: int = 1
    sold_price_per_yard: Decimal | None = None

    @property
    def item_id(self) -> str:
        return item_id(self.design, self.shade)

    @property
    def is_available(self) -> bool:
        return self.status == ThanStatus.AVAILABLE

    @property
    def value(self) -> Decimal:
        return self.yards * self.price_per_yard

    @property
    def sold_value(self) -> Decimal:
        """What the sale of this than was booked at."""
        price = self.sold_price_per_yard
        return self.yards * (price if price is not None else self.price_per_yard)


@dataclass(frozen=True)
class PackageSummary:
    """Derived view over all thans sharing a package number."""

    package_no: str
    design: str
    shade: str
    warehouse: str
    price_per_yard: Decimal
    thans: tuple[ThanInfo, ...] = field(default_factory=tuple)
    indent: str | None = None

    @classmethod
    def from_thans(cls, thans: list[ThanInfo]) -> PackageSummary:
        """Build a summary; ``thans`` must be non-empty and share package_no."""
        ordered = tuple(sorted(thans, key=lambda t: t.than_no))
        first = ordered[0]
        return cls(
            package_no=first.package_no,
            design=first.design,
            shade=first.shade,
            warehouse=first.warehouse,
            price_per_yard=first.price_per_yard,
            thans=ordered,
            indent=first.indent,
        )

    @property
    def available_thans(self) -> tuple[ThanInfo, ...]:
        return tuple(t for t in self.thans if t.is_available)

    @property
    def sold_thans(self) -> tuple[ThanInfo, ...]:
        return tuple(t for t in self.thans if not t.is_available)

    @property
    def total_thans(self) -> int:
        return len(self.thans)

    @property
    def total_yards(self) -> Decimal:
        return sum((t.yards for t in self.thans), Decimal("0"))

    @property
    def available_yards(self) -> Decimal:
        return sum((t.yards for t in self.available_thans), Decimal("0"))

    @property
    def sold_yards(self) -> Decimal:
        return sum((t.yards for t in self.sold_thans), Decimal("0"))

    @property
    def available_value(self) -> Decimal:
        return sum((t.value for t in self.available_thans), Decimal("0"))

    @property
    def item_id(self) -> str:
        return item_id(self.design, self.shade)


@dataclass(frozen=True)
class StockSummary:
    """Aggregate of available stock matching a filter."""

    filters: InventoryFilters
    total_yards: Decimal
    total_thans: int
    total_packages: int
    total_value: Decimal
