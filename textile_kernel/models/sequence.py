"""
Module: textile_kernel.models.sequence
Responsibility: Named counter rows behind human-readable ids
    (LE-..., SL-..., CUST-..., APR-...) and audit sequence numbers.
Architecture position: Kernel > Models.  Used only by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
