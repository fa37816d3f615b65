"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for audit events and for the
    human-readable ids of ledger entries (``LE-YYYYMMDD-NNN``), stock
    movements (``SL-...``), customers (``CUST-...``) and approval
    requests (``APR-...``).  Each allocation is an in-place
    ``UPDATE ... SET current_value = current_value + 1`` on the
    ``sequence_counters`` row, which holds the row lock until the
    caller's transaction ends, so concurrent allocations never collide.

Invariants enforced:
    - The aggregate-max-plus-one pattern is never used; the counter row
      is the sole source of truth.
    - The increment is only visible after the caller's transaction
      commits.  Rollback returns the value.

Failure modes:
    - IntegrityError if two transactions create the same counter at the
      same moment.  ``seed_sequences`` creates the well-known counters up
      front so this only affects ad-hoc names.
"""

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock
from textile_kernel.logging_config import get_logger
from textile_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Usage:
        seq = SequenceService(session).next_value("audit_event")
    """

    LEDGER_ENTRY = "ledger_entry"
    STOCK_MOVEMENT = "stock_movement"
    CUSTOMER = "customer"
    APPROVAL = "approval"
    AUDIT_EVENT = "audit_event"

    WELL_KNOWN = (LEDGER_ENTRY, STOCK_MOVEMENT, CUSTOMER, APPROVAL, AUDIT_EVENT)

    _PREFIXES = {
        LEDGER_ENTRY: "LE",
        STOCK_MOVEMENT: "SL",
        CUSTOMER: "CUST",
        APPROVAL: "APR",
    }

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0 that is strictly greater than any
              previously returned value for this sequence name.
        """
        # Increment first: the UPDATE takes the row (or database) write lock
        # before the value is read back.
        result = self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._session.add(SequenceCounter(name=sequence_name, current_value=1))
            self._session.flush()
            value = 1
        else:
            value = self._session.execute(
                select(SequenceCounter.current_value)
                .where(SequenceCounter.name == sequence_name)
            ).scalar_one()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def next_id(self, sequence_name: str, clock: Clock) -> str:
        """Formatted id: ``<PREFIX>-<YYYYMMDD>-<NNN>``."""
        value = self.next_value(sequence_name)
        stamp = clock.now().strftime("%Y%m%d")
        return f"{self._PREFIXES[sequence_name]}-{stamp}-{value:03d}"


def seed_sequences(session: Session) -> None:
    """Create the well-known counter rows if they are missing."""
    existing = set(session.execute(select(SequenceCounter.name)).scalars())
    for name in SequenceService.WELL_KNOWN:
        if name not in existing:
            session.add(SequenceCounter(name=name, current_value=0))
    session.flush()
