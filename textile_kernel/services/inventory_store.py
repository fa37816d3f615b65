"""
InventoryStore -- than rows and the package views derived from them.

Responsibility:
    Reads and mutates thans.  Packages are never persisted: every package
    operation groups thans on ``package_no`` and ``PackageSummary``
    computes the aggregates on read.

Architecture position:
    Kernel > Services.  Called by the WorkflowOrchestrator inside the
    transaction that also posts the mutation's ledger, movement and
    audit effects.

Invariants enforced:
    - Than status only moves available -> sold (sell) and
      sold -> available (return); anything else raises before a write.
    - Every write goes through the ORM so the row version is compared at
      flush (``version_id_col``).  A concurrent change raises
      ``sqlalchemy.orm.exc.StaleDataError``; the orchestrator retries.
    - ``update_price`` touches every matching row regardless of status.

Failure modes:
    - ThanNotFoundError / PackageNotFoundError for unknown keys.
    - ThanNotAvailableError when selling or transferring a sold than.
    - NothingToReturnError when returning a than that is not sold.
    - SameWarehouseError when a transfer would not move anything.
    - InvalidAmountError for a non-positive price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import func, select

from textile_kernel.domain.inventory import (
    InventoryFilters,
    PackageSummary,
    StockSummary,
    ThanInfo,
    ThanStatus,
    can_transition,
)
from textile_kernel.exceptions import (
    InvalidAmountError,
    MissingSlotError,
    NothingToReturnError,
    PackageNotFoundError,
    SameWarehouseError,
    ThanNotAvailableError,
    ThanNotFoundError,
)
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import Than
from textile_kernel.services.base import BaseService

logger = get_logger("services.inventory_store")


@dataclass(frozen=True)
class TransferResult:
    """Thans moved by a transfer, with the warehouse they left."""

    package_no: str
    from_warehouse: str
    to_warehouse: str
    thans: tuple[ThanInfo, ...]

    @property
    def total_yards(self) -> Decimal:
        return sum((t.yards for t in self.thans), Decimal("0"))


class InventoryStore(BaseService):
    """Read and write access to thans."""

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _filtered(self, filters: InventoryFilters):
        stmt = select(Than)
        if filters.design:
            stmt = stmt.where(func.lower(Than.design) == filters.design.strip().lower())
        if filters.shade:
            stmt = stmt.where(func.lower(Than.shade) == filters.shade.strip().lower())
        if filters.warehouse:
            stmt = stmt.where(func.lower(Than.warehouse) == filters.warehouse.strip().lower())
        if filters.package_no:
            stmt = stmt.where(Than.package_no == str(filters.package_no).strip())
        return stmt

    def _row(self, package_no: str, than_no: int) -> Than:
        row = self.session.execute(
            select(Than).where(
                Than.package_no == str(package_no),
                Than.than_no == int(than_no),
            )
        ).scalar_one_or_none()
        if row is None:
            raise ThanNotFoundError(package_no, than_no)
        return row

    def _package_rows(self, package_no: str) -> list[Than]:
        rows = list(self.session.execute(
            select(Than)
            .where(Than.package_no == str(package_no))
            .order_by(Than.than_no)
        ).scalars())
        if not rows:
            raise PackageNotFoundError(package_no)
        return rows

    def find_available(self, filters: InventoryFilters | None = None) -> list[ThanInfo]:
        """Available thans matching ``filters``, ordered by package and than."""
        stmt = (
            self._filtered(filters or InventoryFilters())
            .where(Than.status == ThanStatus.AVAILABLE.value)
            .order_by(Than.package_no, Than.than_no)
        )
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def find_than(self, package_no: str, than_no: int) -> ThanInfo | None:
        row = self.session.execute(
            select(Than).where(
                Than.package_no == str(package_no),
                Than.than_no == int(than_no),
            )
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def than_numbers(self, package_no: str) -> list[int]:
        """Than numbers in a package (empty if the package is unknown)."""
        return list(self.session.execute(
            select(Than.than_no)
            .where(Than.package_no == str(package_no))
            .order_by(Than.than_no)
        ).scalars())

    def than_keys(self, filters: InventoryFilters) -> list[tuple[str, int]]:
        """(package_no, than_no) of every than matching ``filters``."""
        stmt = self._filtered(filters).with_only_columns(Than.package_no, Than.than_no)
        return [(p, n) for p, n in self.session.execute(stmt).all()]

    def get_package(self, package_no: str) -> PackageSummary | None:
        rows = self.session.execute(
            select(Than).where(Than.package_no == str(package_no))
        ).scalars().all()
        if not rows:
            return None
        return PackageSummary.from_thans([r.to_dto() for r in rows])

    def list_packages(self, design: str, shade: str | None = None) -> list[PackageSummary]:
        """Packages of a design (and optionally shade), ordered by package_no."""
        rows = self.session.execute(
            self._filtered(InventoryFilters(design=design, shade=shade))
            .order_by(Than.package_no, Than.than_no)
        ).scalars()
        grouped: dict[str, list[ThanInfo]] = {}
        for row in rows:
            grouped.setdefault(row.package_no, []).append(row.to_dto())
        return [PackageSummary.from_thans(thans) for thans in grouped.values()]

    def check_stock(self, filters: InventoryFilters | None = None) -> StockSummary:
        """Aggregate of available yards, thans, packages and value."""
        filters = filters or InventoryFilters()
        available = self.find_available(filters)
        return StockSummary(
            filters=filters,
            total_yards=sum((t.yards for t in available), Decimal("0")),
            total_thans=len(available),
            total_packages=len({t.package_no for t in available}),
            total_value=sum((t.value for t in available), Decimal("0")),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_thans(self, rows: Iterable[dict[str, Any]]) -> list[ThanInfo]:
        """
        Insert new thans, as the bulk importer does.

        Each row needs package_no, than_no, design, yards, warehouse and
        price_per_yard; shade, indent and cs_no are optional.
        """
        now = self.clock.now()
        created = []
        for data in rows:
            than = Than(
                package_no=str(data["package_no"]).strip(),
                than_no=int(data["than_no"]),
                design=str(data["design"]).strip(),
                shade=str(data.get("shade") or "").strip(),
                yards=Decimal(str(data["yards"])),
                status=ThanStatus.AVAILABLE.value,
                warehouse=str(data["warehouse"]).strip(),
                price_per_yard=Decimal(str(data.get("price_per_yard") or 0)),
                indent=data.get("indent"),
                cs_no=data.get("cs_no"),
                updated_at=now,
            )
            self.session.add(than)
            created.append(than)
        self.session.flush()
        logger.info("thans_added", extra={"count": len(created)})
        return [t.to_dto() for t in created]

    def _sell(self, row: Than, customer: str, sale_date: str) -> None:
        row.status = ThanStatus.SOLD.value
        row.sold_to = customer
        row.sold_date = sale_date
        row.sold_price_per_yard = row.price_per_yard
        row.updated_at = self.clock.now()

    def _release(self, row: Than) -> None:
        row.status = ThanStatus.AVAILABLE.value
        row.sold_to = None
        row.sold_date = None
        row.sold_price_per_yard = None
        row.updated_at = self.clock.now()

    def mark_than_sold(
        self, package_no: str, than_no: int, customer: str, sale_date: str | None = None,
    ) -> ThanInfo:
        """
        Sell one than.

        Raises:
            ThanNotFoundError: No such than.
            ThanNotAvailableError: The than is already sold.
        """
        row = self._row(package_no, than_no)
        if not can_transition(ThanStatus(row.status), ThanStatus.SOLD):
            raise ThanNotAvailableError(package_no, than_no, row.status)
        self._sell(row, customer, sale_date or self.clock.today_iso())
        self.session.flush()
        logger.info(
            "than_sold",
            extra={"package_no": package_no, "than_no": than_no, "customer": customer},
        )
        return row.to_dto()

    def mark_than_available(self, package_no: str, than_no: int) -> ThanInfo:
        """
        Return one sold than to stock.

        Returns:
            The than as it was before the return (status sold, sold_to set).

        Raises:
            ThanNotFoundError: No such than.
            NothingToReturnError: The than is not sold.
        """
        row = self._row(package_no, than_no)
        if not can_transition(ThanStatus(row.status), ThanStatus.AVAILABLE):
            raise NothingToReturnError(package_no, than_no)
        before = row.to_dto()
        self._release(row)
        self.session.flush()
        logger.info("than_returned", extra={"package_no": package_no, "than_no": than_no})
        return before

    def mark_package_sold(
        self, package_no: str, customer: str, sale_date: str | None = None,
    ) -> list[ThanInfo]:
        """
        Sell every available than of a package.

        Returns:
            The thans sold by this call (already-sold thans are skipped).

        Raises:
            PackageNotFoundError: No thans carry this package number.
            ThanNotAvailableError: No than in the package is available.
        """
        rows = self._package_rows(package_no)
        available = [r for r in rows if r.status == ThanStatus.AVAILABLE.value]
        if not available:
            raise ThanNotAvailableError(package_no, None, ThanStatus.SOLD.value)
        sale_date = sale_date or self.clock.today_iso()
        for row in available:
            self._sell(row, customer, sale_date)
        self.session.flush()
        logger.info(
            "package_sold",
            extra={"package_no": package_no, "thans": len(available), "customer": customer},
        )
        return [r.to_dto() for r in available]

    def mark_package_available(self, package_no: str) -> list[ThanInfo]:
        """
        Return every sold than of a package.

        Returns:
            The returned thans as they were before the return.

        Raises:
            PackageNotFoundError: No thans carry this package number.
            NothingToReturnError: Nothing in the package is sold.
        """
        rows = self._package_rows(package_no)
        sold = [r for r in rows if r.status == ThanStatus.SOLD.value]
        if not sold:
            raise NothingToReturnError(package_no)
        before = [r.to_dto() for r in sold]
        for row in sold:
            self._release(row)
        self.session.flush()
        logger.info("package_returned", extra={"package_no": package_no, "thans": len(sold)})
        return before

    def update_price(self, filters: InventoryFilters, new_price: Decimal) -> int:
        """
        Set price_per_yard on every matching than, sold or not.

        A sold than keeps the price its sale was booked at in
        sold_price_per_yard.

        Returns:
            Number of rows updated.

        Raises:
            InvalidAmountError: ``new_price`` is not positive.
            MissingSlotError: No filter was given.
        """
        new_price = Decimal(new_price)
        if new_price <= 0:
            raise InvalidAmountError("price", new_price)
        if not (filters.design or filters.package_no):
            raise MissingSlotError(
                "filters", 'Which package or design? e.g. "Update price of 44200 BLACK to 1500"',
            )
        rows = self.session.execute(self._filtered(filters)).scalars().all()
        now = self.clock.now()
        for row in rows:
            row.price_per_yard = new_price
            row.updated_at = now
        self.session.flush()
        logger.info(
            "price_updated",
            extra={"filters": filters.to_dict(), "price": str(new_price), "rows": len(rows)},
        )
        return len(rows)

    def transfer_than(self, package_no: str, than_no: int, to_warehouse: str) -> TransferResult:
        """
        Move one available than to another warehouse.

        Raises:
            ThanNotFoundError: No such than.
            ThanNotAvailableError: The than is sold.
            SameWarehouseError: The than is already at ``to_warehouse``.
        """
        row = self._row(package_no, than_no)
        if row.status != ThanStatus.AVAILABLE.value:
            raise ThanNotAvailableError(package_no, than_no, row.status)
        to_warehouse = to_warehouse.strip()
        if row.warehouse.lower() == to_warehouse.lower():
            raise SameWarehouseError(package_no, than_no, row.warehouse)
        origin = row.warehouse
        row.warehouse = to_warehouse
        row.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "than_transferred",
            extra={
                "package_no": package_no,
                "than_no": than_no,
                "from_warehouse": origin,
                "to_warehouse": to_warehouse,
            },
        )
        return TransferResult(package_no, origin, to_warehouse, (row.to_dto(),))

    def transfer_package(self, package_no: str, to_warehouse: str) -> TransferResult:
        """
        Move every available than of a package that is not already at the
        destination.

        Raises:
            PackageNotFoundError: No thans carry this package number.
            ThanNotAvailableError: No than in the package is available.
            SameWarehouseError: Every available than is already there.
        """
        rows = self._package_rows(package_no)
        available = [r for r in rows if r.status == ThanStatus.AVAILABLE.value]
        if not available:
            raise ThanNotAvailableError(package_no, None, ThanStatus.SOLD.value)
        to_warehouse = to_warehouse.strip()
        movable = [r for r in available if r.warehouse.lower() != to_warehouse.lower()]
        if not movable:
            raise SameWarehouseError(package_no, None, available[0].warehouse)
        origin = movable[0].warehouse
        now = self.clock.now()
        for row in movable:
            row.warehouse = to_warehouse
            row.updated_at = now
        self.session.flush()
        logger.info(
            "package_transferred",
            extra={
                "package_no": package_no,
                "thans": len(movable),
                "from_warehouse": origin,
                "to_warehouse": to_warehouse,
            },
        )
        return TransferResult(
            package_no, origin, to_warehouse, tuple(r.to_dto() for r in movable),
        )
