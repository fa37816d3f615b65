"""
Module: textile_kernel.models.inventory
Responsibility: ORM persistence for thans (the discrete fabric units) and
    customers.  Packages are never stored; they are derived by grouping
    thans on package_no.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ DTOs only.

Invariants enforced:
    - (package_no, than_no) is unique.
    - status is 'available' or 'sold' (check constraint).
    - Every UPDATE compares the row version (SQLAlchemy version_id_col);
      a concurrent change surfaces as StaleDataError at flush.
    - Customer names are unique case-insensitively (name_key column).

Failure modes:
    - IntegrityError on duplicate (package_no, than_no) or customer name.
    - StaleDataError when the version moved underneath the writer.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base
from textile_kernel.domain.inventory import ThanInfo, ThanStatus


class Than(Base):
    """A single roll of fabric inside a package."""

    __tablename__ = "thans"

    __table_args__ = (
        UniqueConstraint("package_no", "than_no", name="uq_thans_package_than"),
        CheckConstraint("status IN ('available', 'sold')", name="ck_thans_status"),
        Index("idx_thans_design_shade", "design", "shade"),
        Index("idx_thans_warehouse_status", "warehouse", "status"),
    )

    package_no: Mapped[str] = mapped_column(String(50), nullable=False)
    than_no: Mapped[int] = mapped_column(Integer, nullable=False)
    design: Mapped[str] = mapped_column(String(100), nullable=False)
    shade: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Fixed at import; never written afterwards
    yards: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ThanStatus.AVAILABLE.value,
    )
    warehouse: Mapped[str] = mapped_column(String(100), nullable=False)
    price_per_yard: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Price the sale was booked at; cleared on return
    sold_price_per_yard: Mapped[Decimal | None] = mapped_column(nullable=True)
    sold_to: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sold_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    indent: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cs_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Than {self.package_no}/{self.than_no} {self.status} {self.yards}yd>"

    def to_dto(self) -> ThanInfo:
        return ThanInfo(
            package_no=self.package_no,
            than_no=self.than_no,
            design=self.design,
            shade=self.shade,
            yards=Decimal(self.yards),
            status=ThanStatus(self.status),
            warehouse=self.warehouse,
            price_per_yard=Decimal(self.price_per_yard),
            sold_to=self.sold_to,
            sold_date=self.sold_date,
            sold_price_per_yard=(
                Decimal(self.sold_price_per_yard) if self.sold_price_per_yard is not None else None
            ),
            updated_at=self.updated_at,
            indent=self.indent,
            version=self.version,
        )


class Customer(Base):
    """Trading party buying fabric on account."""

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("customer_id", name="uq_customers_customer_id"),
        UniqueConstraint("name_key", name="uq_customers_name_key"),
    )

    customer_id: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Lower-cased, stripped name for lookups
    name_key: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="Retail")
    credit_limit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    outstanding_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_terms: Mapped[str] = mapped_column(String(50), nullable=False, default="COD")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Customer {self.customer_id} {self.name}>"
