"""
Module: textile_kernel.db.base
Responsibility: Declarative base shared by every ORM model: surrogate key,
    column type mapping and constraint naming.
Architecture position: Kernel > DB.  Lowest import target in the kernel;
    MUST NOT import from models/, services/, domain/ or outer layers.

Invariants enforced:
    - Every table has a uuid4 surrogate ``id``.  Business keys (package_no +
      than_no, request_id, entry_id, customer_id) are separate unique columns.
    - Yards, prices and amounts are Decimal in Python and Numeric(38, 9) in
      the database; nothing quantity-like is a float.
    - Constraint and index names are deterministic, so the same schema
      created on SQLite and PostgreSQL carries the same names.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class GUID(TypeDecorator):
    """UUID kept as its 36-character text form, identical on every backend."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative base for textile kernel tables."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: GUID(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(GUID(), primary_key=True, default=uuid4)
