"""
Hypothesis-based properties of the inventory, ledger and approval flow.

Random sequences of write actions run against freshly seeded stock; after
every step the whole store is checked.

Properties checked here:
- Than status is always 'available' or 'sold'; a sold than is never sold
  again (its buyer and booked price survive every later action)
- Every transaction's ledger entries balance, and so does the trial balance
- Materialized stock equals the movement-log scan and never goes negative;
  it equals the available yards per item (per branch when nothing moves
  between warehouses)
- Receivable on the ledger matches what customers owe
- Approving a request twice applies its effects once

Not fuzzed here (explicit tests cover them):
- Keyed locks and concurrent resolution (tests/concurrency)
- Intent parsing and missing slots (tests/domain/test_intent.py)
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from textile_kernel.db.bootstrap import prepare_database
from textile_kernel.db.engine import reset_engine, session_scope
from textile_kernel.domain.actions import (
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
from textile_kernel.domain.approval import Actor, ApprovalStatus
from textile_kernel.domain.clock import DeterministicClock
from textile_kernel.domain.inventory import InventoryFilters, ThanStatus, can_transition
from textile_kernel.domain.risk import Role
from textile_kernel.exceptions import (
    ApprovalNotFoundError,
    TextileKernelError,
    ThanNotAvailableError,
)
from textile_kernel.models.inventory import Than
from textile_kernel.services.action_executor import ActionExecutor
from textile_kernel.services.actors import ActorDirectory
from textile_kernel.services.approval_queue import ApprovalQueue
from textile_kernel.services.customer_service import CustomerService
from textile_kernel.services.idempotency_cache import RecentActionCache
from textile_kernel.services.inventory_store import InventoryStore
from textile_kernel.services.keyed_lock import KeyedLock
from textile_kernel.services.ledger_posting import LedgerPostingService
from textile_kernel.services.notification import RecordingNotifier
from textile_kernel.services.stock_movement_log import StockMovementLog
from textile_kernel.services.workflow_orchestrator import (
    ActionStatus,
    OrchestratorSettings,
    WorkflowOrchestrator,
)

from tests.conftest import ADMIN_ID, EMPLOYEE_ID, STOCK_ROWS, seed_stock

FUZZ_SETTINGS = settings(
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

PACKAGES = sorted({row["package_no"] for row in STOCK_ROWS})
THAN_KEYS = [(row["package_no"], row["than_no"]) for row in STOCK_ROWS]

packages = st.sampled_from(PACKAGES)
# One key that does not exist
than_keys = st.sampled_from(THAN_KEYS + [("5801", 4)])
customers = st.sampled_from(["Ibrahim", "Adamu", "Chidi"])
warehouses = st.sampled_from(["Lagos", "Kano", "Abuja"])
prices = st.decimals(min_value=Decimal("100"), max_value=Decimal("5000"), places=0)
amounts = st.decimals(min_value=Decimal("1"), max_value=Decimal("60000"), places=0)

sales_and_returns = st.one_of(
    st.builds(lambda key, c: SellThan(key[0], key[1], c), than_keys, customers),
    st.builds(SellPackage, packages, customers),
    st.builds(lambda key: ReturnThan(key[0], key[1]), than_keys),
    st.builds(ReturnPackage, packages),
    st.builds(lambda p, price: UpdatePrice(InventoryFilters(package_no=p), price), packages, prices),
)

transfers = st.one_of(
    st.builds(lambda key, w: TransferThan(key[0], key[1], w), than_keys, warehouses),
    st.builds(TransferPackage, packages, warehouses),
)

payments = st.builds(RecordPayment, customers, amounts, st.sampled_from(["cash", "bank"]))


def _clock():
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc))


@contextmanager
def seeded_database(clock):
    """A fresh in-memory database with the standard stock received."""
    factory = prepare_database("sqlite://")
    try:
        seed_stock(factory, clock)
        yield factory
    finally:
        reset_engine()


def all_thans(session):
    store = InventoryStore(session)
    return {
        (t.package_no, t.than_no): t
        for package_no in PACKAGES
        for t in store.get_package(package_no).thans
    }


def check_store(session, per_branch):
    """Invariants that hold after any action, applied or rejected."""
    statuses = set(session.execute(select(Than.status).distinct()).scalars())
    assert statuses <= {ThanStatus.AVAILABLE.value, ThanStatus.SOLD.value}

    ledger = LedgerPostingService(session)
    rows = ledger.get_trial_balance()
    assert sum((r.total_debit for r in rows), Decimal("0")) == sum(
        (r.total_credit for r in rows), Decimal("0")
    )

    movements = StockMovementLog(session)
    expected: dict[tuple[str, str], Decimal] = {}
    for than in all_thans(session).values():
        if than.is_available:
            key = (than.item_id, than.warehouse if per_branch else "")
            expected[key] = expected.get(key, Decimal("0")) + than.yards

    on_hand: dict[tuple[str, str], Decimal] = {}
    for level in movements.compute_all_stock():
        assert level.on_hand == movements.compute_stock_by_scan(level.item_id, level.branch)
        if per_branch:
            assert level.on_hand >= 0, f"{level.item_id} at {level.branch} went negative"
        key = (level.item_id, level.branch if per_branch else "")
        on_hand[key] = on_hand.get(key, Decimal("0")) + level.on_hand

    for key in set(on_hand) | set(expected):
        qty = on_hand.get(key, Decimal("0"))
        assert qty >= 0, f"{key[0]} went negative"
        assert qty == expected.get(key, Decimal("0")), key


def run_sequence(actions, per_branch):
    """Apply ``actions`` one transaction each, checking the store after every step."""
    clock = _clock()
    paid = False
    with seeded_database(clock) as factory:
        for step, action in enumerate(actions):
            txn_id = f"TXN-{step:03d}"
            with session_scope(factory) as session:
                before = all_thans(session)

            error = None
            try:
                with session_scope(factory) as session:
                    ActionExecutor(session, clock).apply(action, ADMIN_ID, txn_id)
            except TextileKernelError as exc:
                error = exc
            else:
                paid = paid or isinstance(action, RecordPayment)

            with session_scope(factory) as session:
                after = all_thans(session)
                entries = LedgerPostingService(session).entries_for_txn(txn_id)
                receivable = LedgerPostingService(session).get_ledger_balance("1100")
                owed = sum(
                    (c.outstanding_balance for c in CustomerService(session).list_customers()),
                    Decimal("0"),
                )
                check_store(session, per_branch)

            if error is not None:
                assert entries == []
                assert after == before

            assert sum((e.debit for e in entries), Decimal("0")) == sum(
                (e.credit for e in entries), Decimal("0")
            )

            if isinstance(action, SellThan) and (action.package_no, action.than_no) in before:
                if not before[(action.package_no, action.than_no)].is_available:
                    assert isinstance(error, ThanNotAvailableError)

            for key, old in before.items():
                new = after[key]
                if old.status == new.status == ThanStatus.SOLD:
                    assert (new.sold_to, new.sold_date, new.sold_price_per_yard) == (
                        old.sold_to, old.sold_date, old.sold_price_per_yard,
                    )

            # Payments floor balances at zero, so they can only leave
            # customers owing more than the ledger says
            if paid:
                assert owed >= receivable
            else:
                assert owed == receivable


class TestThanLifecycle:
    @given(current=st.sampled_from(list(ThanStatus)), target=st.sampled_from(list(ThanStatus)))
    def test_only_sold_available_swaps_are_legal(self, current, target):
        assert can_transition(current, target) == (current != target)

    @given(actions=st.lists(sales_and_returns, min_size=1, max_size=15))
    @FUZZ_SETTINGS
    def test_sales_and_returns_keep_branch_stock(self, actions):
        run_sequence(actions, per_branch=True)

    @given(actions=st.lists(st.one_of(sales_and_returns, transfers), min_size=1, max_size=15))
    @FUZZ_SETTINGS
    def test_transfers_keep_item_stock(self, actions):
        run_sequence(actions, per_branch=False)

    @given(actions=st.lists(st.one_of(sales_and_returns, payments), min_size=1, max_size=15))
    @FUZZ_SETTINGS
    def test_payments_keep_ledger_balanced(self, actions):
        run_sequence(actions, per_branch=True)


approvable = st.one_of(
    st.builds(lambda key, c: SellThan(key[0], key[1], c), than_keys, customers),
    st.builds(SellPackage, packages, customers),
    st.builds(lambda key, w: TransferThan(key[0], key[1], w), than_keys, warehouses),
    st.builds(
        lambda ps, c: SellBatch(tuple(ps), c),
        st.lists(packages, min_size=1, max_size=3),
        customers,
    ),
    st.builds(
        lambda ps, w: TransferBatch(tuple(ps), w),
        st.lists(packages, min_size=1, max_size=3),
        warehouses,
    ),
    st.builds(lambda p, price: UpdatePrice(InventoryFilters(package_no=p), price), packages, prices),
)


def _state(session):
    ledger = LedgerPostingService(session)
    return (
        all_thans(session),
        ledger.get_trial_balance(),
        StockMovementLog(session).compute_all_stock(),
    )


class TestApprovalReplay:
    @given(action=approvable)
    @FUZZ_SETTINGS
    def test_second_approval_changes_nothing(self, action):
        clock = _clock()
        admin = Actor(ADMIN_ID, Role.ADMIN, "Musa")
        employee = Actor(EMPLOYEE_ID, Role.EMPLOYEE, "Bala")
        with seeded_database(clock) as factory:
            orchestrator = WorkflowOrchestrator(
                factory,
                settings=OrchestratorSettings(retry_backoff_seconds=0, lock_timeout_seconds=5.0),
                clock=clock,
                notifier=RecordingNotifier(),
                actors=ActorDirectory(admin_ids=[ADMIN_ID], employee_ids=[EMPLOYEE_ID]),
                cache=RecentActionCache(ttl_seconds=60, clock=clock),
                locks=KeyedLock(timeout=5.0),
            )
            queued = orchestrator.submit(action, employee)
            assert queued.status is ActionStatus.APPROVAL_REQUIRED

            try:
                orchestrator.execute_approved_action(queued.request_id, admin)
            except TextileKernelError:
                # Replay failed validation; the claim rolled back with it
                with session_scope(factory) as session:
                    request = ApprovalQueue(session, clock).get(queued.request_id)
                assert request.status is ApprovalStatus.PENDING
                return

            with session_scope(factory) as session:
                applied = _state(session)

            with pytest.raises(ApprovalNotFoundError):
                orchestrator.execute_approved_action(queued.request_id, admin)

            with session_scope(factory) as session:
                assert _state(session) == applied
                request = ApprovalQueue(session, clock).get(queued.request_id)
            assert request.status is ApprovalStatus.APPROVED
