"""
Module: textile_kernel.models.stock
Responsibility: ORM persistence for the stock movement log and the
    materialized per-(item, branch) balance derived from it.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Movements are append-only (db/immutability.py).
    - Exactly one of qty_in / qty_out is positive on every movement.
    - stock_balances.on_hand == sum(qty_in) - sum(qty_out) for the same
      (item_id, branch); StockMovementLog updates both in one flush.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base


class StockMovement(Base):
    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("entry_id", name="uq_stock_movements_entry_id"),
        CheckConstraint(
            "type IN ('sale_out', 'return_in', 'purchase_in')",
            name="ck_stock_movements_type",
        ),
        CheckConstraint(
            "(qty_in > 0 AND qty_out = 0) OR (qty_out > 0 AND qty_in = 0)",
            name="ck_stock_movements_one_side",
        ),
        Index("idx_stock_movements_item_branch", "item_id", "branch"),
        Index("idx_stock_movements_reference", "reference_id"),
    )

    entry_id: Mapped[str] = mapped_column(String(50), nullable=False)
    item_id: Mapped[str] = mapped_column(String(200), nullable=False)
    package_no: Mapped[str] = mapped_column(String(50), nullable=False)
    than_no: Mapped[int | None] = mapped_column(Integer, nullable=True)
    branch: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    qty_in: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    qty_out: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    reference_id: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.entry_id} {self.type} {self.item_id}@{self.branch} "
            f"in={self.qty_in} out={self.qty_out}>"
        )


class StockBalance(Base):
    """Running on-hand quantity per (item_id, branch)."""

    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint("item_id", "branch", name="uq_stock_balances_item_branch"),
    )

    item_id: Mapped[str] = mapped_column(String(200), nullable=False)
    branch: Mapped[str] = mapped_column(String(100), nullable=False)
    on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
