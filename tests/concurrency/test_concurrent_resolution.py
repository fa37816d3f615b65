"""
Concurrent approvals and sales against a shared file database.

Each thread runs its own units of work (its own session and connection);
the orchestrator's keyed lock and conditional resolve decide the winner.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from textile_kernel.db.engine import session_scope
from textile_kernel.domain.actions import SellPackage, SellThan
from textile_kernel.domain.approval import ApprovalStatus
from textile_kernel.exceptions import ApprovalNotFoundError, ThanNotAvailableError
from textile_kernel.services.approval_queue import ApprovalQueue
from textile_kernel.services.ledger_posting import LedgerPostingService
from textile_kernel.services.workflow_orchestrator import ActionStatus

pytestmark = pytest.mark.slow_locks

THREADS = 8


def run_together(fn, args_list):
    """Start every call at once; return results and exceptions in order."""
    barrier = threading.Barrier(len(args_list))

    def call(args):
        barrier.wait()
        try:
            return fn(*args)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(call, args_list))


@pytest.fixture
def shared(file_session_factory, deterministic_clock, seed, make_orchestrator):
    seed(file_session_factory, deterministic_clock)
    return file_session_factory, make_orchestrator(file_session_factory)


class TestConcurrentApproval:
    def test_exactly_one_approval_applies(self, shared, employee, admin):
        factory, orchestrator = shared
        request_id = orchestrator.submit(SellPackage("5801", "Ibrahim"), employee).request_id

        outcomes = run_together(
            orchestrator.execute_approved_action, [(request_id, admin)] * THREADS,
        )

        applied = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(applied) == 1
        assert applied[0].status is ActionStatus.COMPLETED
        assert all(isinstance(o, ApprovalNotFoundError) for o in outcomes if o is not applied[0])

        with session_scope(factory) as s:
            assert len(LedgerPostingService(s).entries_for_txn(request_id)) == 2
            assert ApprovalQueue(s).get(request_id).status is ApprovalStatus.APPROVED

    def test_approve_races_reject(self, shared, employee, admin):
        factory, orchestrator = shared
        request_id = orchestrator.submit(SellPackage("5802", "Ibrahim"), employee).request_id

        outcomes = run_together(
            lambda decide: decide(request_id, admin),
            [(orchestrator.execute_approved_action,), (orchestrator.reject_approval,)] * 2,
        )

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(winners) == 1
        with session_scope(factory) as s:
            status = ApprovalQueue(s).get(request_id).status
            entries = LedgerPostingService(s).get_trial_balance()
        if winners[0].status is ActionStatus.REJECTED:
            assert status is ApprovalStatus.REJECTED
            assert entries == []
        else:
            assert status is ApprovalStatus.APPROVED
            assert entries

    def test_second_orchestrator_sees_resolution(self, shared, make_orchestrator, employee, admin):
        factory, first = shared
        second = make_orchestrator(factory)
        request_id = first.submit(SellThan("5801", 1, "Ibrahim"), employee).request_id

        first.execute_approved_action(request_id, admin)
        with pytest.raises(ApprovalNotFoundError):
            second.execute_approved_action(request_id, admin)


class TestConcurrentSales:
    def test_one_than_sold_once(self, shared, admin):
        factory, orchestrator = shared
        buyers = [(SellThan("5803", 1, f"Buyer {i}"), admin) for i in range(THREADS)]

        outcomes = run_together(orchestrator.submit, buyers)

        sold = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(sold) == 1
        assert all(isinstance(o, ThanNotAvailableError) for o in outcomes if o is not sold[0])

        with session_scope(factory) as s:
            rows = LedgerPostingService(s).get_trial_balance()
        receivable = next(r for r in rows if r.account_code == "1100")
        assert receivable.total_debit == sold[0].detail["amount"]
