"""
StockMovementLog -- append-only in/out quantities per item and branch.

Responsibility:
    Records sale_out, return_in and purchase_in movements and keeps the
    materialized ``stock_balances`` row for the same (item_id, branch)
    in step, in the same flush.  ``compute_stock`` reads the balance;
    ``compute_stock_by_scan`` recomputes it from the full log and is the
    oracle the tests compare against.

Invariants enforced:
    - Movements are never updated or deleted.
    - on_hand == sum(qty_in) - sum(qty_out) for every (item_id, branch).
    - A zero or negative quantity is rejected before anything is written.

Non-goals:
    - Transfers move thans between warehouses without a movement row.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select

from textile_kernel.domain.inventory import item_id as make_item_id
from textile_kernel.exceptions import InvalidAmountError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.stock import StockBalance, StockMovement
from textile_kernel.services.base import BaseService
from textile_kernel.services.sequence_service import SequenceService

logger = get_logger("services.stock_movement_log")

SALE_OUT = "sale_out"
RETURN_IN = "return_in"
PURCHASE_IN = "purchase_in"


@dataclass(frozen=True)
class MovementInfo:
    entry_id: str
    item_id: str
    package_no: str
    than_no: int | None
    branch: str
    type: str
    qty_in: Decimal
    qty_out: Decimal
    reference_id: str


@dataclass(frozen=True)
class StockLevel:
    item_id: str
    branch: str
    on_hand: Decimal


class StockMovementLog(BaseService):
    """Writer and reader of the stock movement log."""

    def _record(
        self,
        movement_type: str,
        design: str,
        shade: str,
        package_no: str,
        than_no: int | None,
        branch: str,
        qty: Decimal,
        reference_id: str,
        created_by: str,
    ) -> MovementInfo:
        qty = Decimal(qty)
        if qty <= 0:
            raise InvalidAmountError("qty", qty)
        inbound = movement_type != SALE_OUT
        item = make_item_id(design, shade)
        entry_id = SequenceService(self.session).next_id(
            SequenceService.STOCK_MOVEMENT, self.clock,
        )
        now = self.clock.now()
        movement = StockMovement(
            entry_id=entry_id,
            item_id=item,
            package_no=str(package_no),
            than_no=than_no,
            branch=branch,
            type=movement_type,
            qty_in=qty if inbound else Decimal("0"),
            qty_out=Decimal("0") if inbound else qty,
            reference_id=reference_id,
            created_by=created_by,
            created_at=now,
        )
        self.session.add(movement)

        balance = self.session.execute(
            select(StockBalance).where(
                StockBalance.item_id == item,
                StockBalance.branch == branch,
            )
        ).scalar_one_or_none()
        if balance is None:
            balance = StockBalance(item_id=item, branch=branch, on_hand=Decimal("0"), updated_at=now)
            self.session.add(balance)
        balance.on_hand = Decimal(balance.on_hand) + (qty if inbound else -qty)
        balance.updated_at = now
        self.session.flush()

        logger.info(
            "stock_movement_recorded",
            extra={
                "entry_id": entry_id,
                "type": movement_type,
                "item_id": item,
                "branch": branch,
                "qty": str(qty),
                "reference_id": reference_id,
            },
        )
        return MovementInfo(
            entry_id=entry_id,
            item_id=item,
            package_no=str(package_no),
            than_no=than_no,
            branch=branch,
            type=movement_type,
            qty_in=movement.qty_in,
            qty_out=movement.qty_out,
            reference_id=reference_id,
        )

    def record_sale_out(
        self, design: str, shade: str, package_no: str, than_no: int | None,
        branch: str, qty: Decimal, reference_id: str, created_by: str = "",
    ) -> MovementInfo:
        return self._record(
            SALE_OUT, design, shade, package_no, than_no, branch, qty, reference_id, created_by,
        )

    def record_return_in(
        self, design: str, shade: str, package_no: str, than_no: int | None,
        branch: str, qty: Decimal, reference_id: str, created_by: str = "",
    ) -> MovementInfo:
        return self._record(
            RETURN_IN, design, shade, package_no, than_no, branch, qty, reference_id, created_by,
        )

    def record_purchase_in(
        self, design: str, shade: str, package_no: str, than_no: int | None,
        branch: str, qty: Decimal, reference_id: str, created_by: str = "",
    ) -> MovementInfo:
        return self._record(
            PURCHASE_IN, design, shade, package_no, than_no, branch, qty, reference_id, created_by,
        )

    def compute_stock(self, item_id: str, branch: str) -> Decimal:
        """On-hand quantity from the materialized balance."""
        on_hand = self.session.execute(
            select(StockBalance.on_hand).where(
                StockBalance.item_id == item_id.upper(),
                StockBalance.branch == branch,
            )
        ).scalar_one_or_none()
        return Decimal(on_hand) if on_hand is not None else Decimal("0")

    def compute_stock_by_scan(self, item_id: str, branch: str) -> Decimal:
        """On-hand quantity recomputed from every movement."""
        qty_in, qty_out = self.session.execute(
            select(
                func.coalesce(func.sum(StockMovement.qty_in), 0),
                func.coalesce(func.sum(StockMovement.qty_out), 0),
            ).where(
                StockMovement.item_id == item_id.upper(),
                StockMovement.branch == branch,
            )
        ).one()
        return Decimal(str(qty_in)) - Decimal(str(qty_out))

    def compute_all_stock(self) -> list[StockLevel]:
        rows = self.session.execute(
            select(StockBalance).order_by(StockBalance.item_id, StockBalance.branch)
        ).scalars()
        return [StockLevel(r.item_id, r.branch, Decimal(r.on_hand)) for r in rows]

    def movements_for(self, reference_id: str) -> list[MovementInfo]:
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.reference_id == reference_id)
            .order_by(StockMovement.created_at, StockMovement.entry_id)
        ).scalars()
        return [
            MovementInfo(
                entry_id=r.entry_id,
                item_id=r.item_id,
                package_no=r.package_no,
                than_no=r.than_no,
                branch=r.branch,
                type=r.type,
                qty_in=Decimal(r.qty_in),
                qty_out=Decimal(r.qty_out),
                reference_id=r.reference_id,
            )
            for r in rows
        ]
