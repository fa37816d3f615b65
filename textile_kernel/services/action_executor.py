"""
ActionExecutor -- applies one typed action inside the caller's transaction.

Responsibility:
    Maps each action kind to its store mutation and then runs the
    mutation's follow-up writes through an ``EffectPipeline``:

        sell      -> sale_out movement, ledger sale pair, customer balance, audit
        return    -> return_in movement, ledger return pair, customer balance, audit
        transfer  -> audit
        price     -> audit
        payment   -> ledger payment pair, audit
        customer  -> audit (only when a customer was created)

Architecture position:
    Kernel > Services.  Used only by the WorkflowOrchestrator, both on
    the direct path and on approval replay.  Never commits: the
    orchestrator's unit of work owns the transaction, so a failing effect
    rolls the mutation back with it.

Invariants enforced:
    - Batch actions are never applied here as a whole; ``split_batch``
      turns them into per-package actions that each get their own
      transaction.
    - One txn_id per applied action; the ledger refuses to post it twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from textile_kernel.domain.actions import (
    Action,
    ActionKind,
    AddCustomer,
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
from textile_kernel.domain.inventory import ThanInfo
from textile_kernel.logging_config import get_logger
from textile_kernel.models.audit_event import AuditAction
from textile_kernel.services.auditor_service import AuditorService
from textile_kernel.services.base import BaseService
from textile_kernel.services.customer_service import CustomerService
from textile_kernel.services.effects import EffectOutcome, EffectPipeline
from textile_kernel.services.inventory_store import InventoryStore, TransferResult
from textile_kernel.services.ledger_posting import LedgerPostingService
from textile_kernel.services.stock_movement_log import RETURN_IN, SALE_OUT, StockMovementLog
from textile_kernel.utils.formatting import fmt_money, fmt_qty

logger = get_logger("services.action_executor")

BATCH_KINDS = frozenset({ActionKind.SELL_BATCH, ActionKind.TRANSFER_BATCH})


@dataclass(frozen=True)
class ExecutionOutcome:
    """What one applied action did."""

    action_kind: ActionKind
    message: str
    detail: dict[str, Any] = field(default_factory=dict)
    effects: tuple[EffectOutcome, ...] = ()


def split_batch(action: Action) -> list[tuple[str, Action]]:
    """
    Per-package actions of a batch, in the order the packages were given.

    Duplicate package numbers are applied once.
    """
    if not isinstance(action, (SellBatch, TransferBatch)):
        raise ValueError(f"{action.kind.value} is not a batch action")
    packages: list[str] = []
    for package_no in action.package_nos:
        if package_no not in packages:
            packages.append(package_no)
    if isinstance(action, SellBatch):
        return [(p, SellPackage(p, action.customer)) for p in packages]
    return [(p, TransferPackage(p, action.to_warehouse)) for p in packages]


def _total_yards(thans: Iterable[ThanInfo]) -> Decimal:
    return sum((t.yards for t in thans), Decimal("0"))


def _total_value(thans: Iterable[ThanInfo]) -> Decimal:
    return sum((t.value for t in thans), Decimal("0"))


def _unit_price(thans: list[ThanInfo]) -> Decimal:
    prices = {t.price_per_yard for t in thans}
    if len(prices) == 1:
        return prices.pop()
    yards = _total_yards(thans)
    return _total_value(thans) / yards if yards else Decimal("0")


def _sold_total(thans: Iterable[ThanInfo]) -> Decimal:
    return sum((t.sold_value for t in thans), Decimal("0"))


def _sold_unit_price(thans: list[ThanInfo]) -> Decimal:
    prices = {
        t.sold_price_per_yard if t.sold_price_per_yard is not None else t.price_per_yard
        for t in thans
    }
    if len(prices) == 1:
        return prices.pop()
    yards = _total_yards(thans)
    return _sold_total(thans) / yards if yards else Decimal("0")


class ActionExecutor(BaseService):
    """
    Applies non-batch actions and their effects.

    Args:
        session: Session of the orchestrator's unit of work.
        clock: Time source shared with every service it builds.
        currency: Currency code used in reply text.
        track_outstanding: Sales raise and returns lower the customer's
            outstanding balance.
    """

    def __init__(
        self,
        session,
        clock=None,
        currency: str = "NGN",
        track_outstanding: bool = True,
    ):
        super().__init__(session, clock)
        self.currency = currency
        self.track_outstanding = track_outstanding
        self.store = InventoryStore(session, self.clock)
        self.movements = StockMovementLog(session, self.clock)
        self.ledger = LedgerPostingService(session, self.clock)
        self.customers = CustomerService(session, self.clock)
        self.auditor = AuditorService(session, self.clock)

    def apply(self, action: Action, actor_id: str, txn_id: str) -> ExecutionOutcome:
        """
        Apply ``action`` under ``txn_id``.

        Raises:
            ValueError: ``action`` is a batch action.
            ValidationError / NotFoundError: A precondition does not hold.
        """
        if action.kind in BATCH_KINDS:
            raise ValueError("Batch actions are applied per package; use split_batch()")
        handler = getattr(self, f"_apply_{action.kind.value}")
        outcome = handler(action, actor_id, txn_id)
        logger.info(
            "action_applied",
            extra={
                "action_kind": action.kind.value,
                "txn_id": txn_id,
                "effects": [f"{e.name}:{e.status.value}" for e in outcome.effects],
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Shared effects
    # ------------------------------------------------------------------

    def _record_movements(
        self, thans: list[ThanInfo], movement_type: str, txn_id: str, actor_id: str,
    ) -> list[str]:
        """One movement per (design, shade, warehouse) group."""
        groups: dict[tuple[str, str, str], list[ThanInfo]] = {}
        for than in thans:
            groups.setdefault((than.design, than.shade, than.warehouse), []).append(than)
        record = (
            self.movements.record_sale_out
            if movement_type == SALE_OUT
            else self.movements.record_return_in
        )
        entry_ids = []
        for (design, shade, warehouse), group in groups.items():
            qty = _total_yards(group)
            if qty <= 0:
                continue
            than_no = group[0].than_no if len(thans) == 1 else None
            movement = record(
                design, shade, group[0].package_no, than_no, warehouse, qty, txn_id, actor_id,
            )
            entry_ids.append(movement.entry_id)
        return entry_ids

    def _sale_effects(
        self,
        thans: list[ThanInfo],
        customer: str,
        actor_id: str,
        txn_id: str,
        entity_type: str,
        entity_id: str,
    ) -> list[EffectOutcome]:
        yards = _total_yards(thans)
        amount = _total_value(thans)
        price = _unit_price(thans)

        pipeline = EffectPipeline()
        pipeline.add(
            "stock_movement",
            lambda: self._record_movements(thans, SALE_OUT, txn_id, actor_id),
        )
        pipeline.add(
            "ledger",
            lambda: [
                e.entry_id
                for e in self.ledger.record_sale(
                    customer, yards, price, txn_id, actor_id, amount=amount,
                )
            ],
        )
        if self.track_outstanding:
            pipeline.add(
                "customer_balance",
                lambda: str(self.customers.add_to_outstanding(customer, amount).outstanding_balance),
            )
        else:
            pipeline.add("customer", lambda: self.customers.find_or_create(customer).customer_id)
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.SALE, entity_type, entity_id, actor_id,
                {
                    "customer": customer,
                    "thans": [t.than_no for t in thans],
                    "yards": yards,
                    "amount": amount,
                    "txn_id": txn_id,
                },
            ).seq,
        )
        return pipeline.run()

    def _return_effects(
        self,
        before: list[ThanInfo],
        actor_id: str,
        txn_id: str,
        entity_type: str,
        entity_id: str,
    ) -> list[EffectOutcome]:
        yards = _total_yards(before)
        amount = _sold_total(before)
        per_customer: dict[str, Decimal] = {}
        for than in before:
            if than.sold_to:
                owed = per_customer.get(than.sold_to, Decimal("0"))
                per_customer[than.sold_to] = owed + than.sold_value
        customer_label = ", ".join(per_customer) or ""

        def _reduce_balances() -> dict[str, str]:
            balances = {}
            for name, owed in per_customer.items():
                info = self.customers.reduce_outstanding(name, owed)
                if info is not None:
                    balances[info.name] = str(info.outstanding_balance)
            return balances

        pipeline = EffectPipeline()
        pipeline.add(
            "stock_movement",
            lambda: self._record_movements(before, RETURN_IN, txn_id, actor_id),
        )
        pipeline.add(
            "ledger",
            lambda: [
                e.entry_id
                for e in self.ledger.record_return(
                    customer_label, yards, _sold_unit_price(before), txn_id, actor_id, amount=amount,
                )
            ],
        )
        if self.track_outstanding:
            pipeline.add("customer_balance", _reduce_balances)
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.RETURN, entity_type, entity_id, actor_id,
                {
                    "customers": sorted(per_customer),
                    "thans": [t.than_no for t in before],
                    "yards": yards,
                    "amount": amount,
                    "txn_id": txn_id,
                },
            ).seq,
        )
        return pipeline.run()

    def _transfer_effects(
        self, moved: TransferResult, actor_id: str, txn_id: str, entity_type: str, entity_id: str,
    ) -> list[EffectOutcome]:
        pipeline = EffectPipeline()
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.TRANSFER, entity_type, entity_id, actor_id,
                {
                    "thans": [t.than_no for t in moved.thans],
                    "from_warehouse": moved.from_warehouse,
                    "to_warehouse": moved.to_warehouse,
                    "yards": moved.total_yards,
                    "txn_id": txn_id,
                },
            ).seq,
        )
        return pipeline.run()

    # ------------------------------------------------------------------
    # Handlers, one per action kind
    # ------------------------------------------------------------------

    def _apply_sell_than(self, action: SellThan, actor_id: str, txn_id: str) -> ExecutionOutcome:
        than = self.store.mark_than_sold(action.package_no, action.than_no, action.customer)
        effects = self._sale_effects(
            [than], action.customer, actor_id, txn_id,
            "Than", f"{action.package_no}/{action.than_no}",
        )
        return ExecutionOutcome(
            action.kind,
            f"Sold than {action.than_no} from package {action.package_no} "
            f"({fmt_qty(than.yards)} yds) to {action.customer}.",
            {
                "package_no": action.package_no,
                "thans": [than.than_no],
                "yards": than.yards,
                "amount": than.value,
                "customer": action.customer,
            },
            tuple(effects),
        )

    def _apply_sell_package(self, action: SellPackage, actor_id: str, txn_id: str) -> ExecutionOutcome:
        sold = self.store.mark_package_sold(action.package_no, action.customer)
        effects = self._sale_effects(
            sold, action.customer, actor_id, txn_id, "Package", action.package_no,
        )
        yards = _total_yards(sold)
        return ExecutionOutcome(
            action.kind,
            f"Sold package {action.package_no}: {len(sold)} thans, "
            f"{fmt_qty(yards)} yards to {action.customer}.",
            {
                "package_no": action.package_no,
                "thans": [t.than_no for t in sold],
                "yards": yards,
                "amount": _total_value(sold),
                "customer": action.customer,
            },
            tuple(effects),
        )

    def _apply_return_than(self, action: ReturnThan, actor_id: str, txn_id: str) -> ExecutionOutcome:
        before = self.store.mark_than_available(action.package_no, action.than_no)
        effects = self._return_effects(
            [before], actor_id, txn_id, "Than", f"{action.package_no}/{action.than_no}",
        )
        return ExecutionOutcome(
            action.kind,
            f"Returned than {action.than_no} from package {action.package_no} "
            f"({fmt_qty(before.yards)} yds), now available.",
            {
                "package_no": action.package_no,
                "thans": [before.than_no],
                "yards": before.yards,
                "amount": before.sold_value,
                "customer": before.sold_to,
            },
            tuple(effects),
        )

    def _apply_return_package(self, action: ReturnPackage, actor_id: str, txn_id: str) -> ExecutionOutcome:
        before = self.store.mark_package_available(action.package_no)
        effects = self._return_effects(before, actor_id, txn_id, "Package", action.package_no)
        yards = _total_yards(before)
        return ExecutionOutcome(
            action.kind,
            f"Returned package {action.package_no}: {len(before)} thans, "
            f"{fmt_qty(yards)} yards, now available.",
            {
                "package_no": action.package_no,
                "thans": [t.than_no for t in before],
                "yards": yards,
                "amount": _sold_total(before),
            },
            tuple(effects),
        )

    def _apply_transfer_than(self, action: TransferThan, actor_id: str, txn_id: str) -> ExecutionOutcome:
        moved = self.store.transfer_than(action.package_no, action.than_no, action.to_warehouse)
        effects = self._transfer_effects(
            moved, actor_id, txn_id, "Than", f"{action.package_no}/{action.than_no}",
        )
        return ExecutionOutcome(
            action.kind,
            f"Transferred than {action.than_no} from package {action.package_no} "
            f"({fmt_qty(moved.total_yards)} yds): {moved.from_warehouse} -> {moved.to_warehouse}",
            self._transfer_detail(moved),
            tuple(effects),
        )

    def _apply_transfer_package(
        self, action: TransferPackage, actor_id: str, txn_id: str,
    ) -> ExecutionOutcome:
        moved = self.store.transfer_package(action.package_no, action.to_warehouse)
        effects = self._transfer_effects(moved, actor_id, txn_id, "Package", action.package_no)
        return ExecutionOutcome(
            action.kind,
            f"Transferred package {action.package_no}: {len(moved.thans)} thans, "
            f"{fmt_qty(moved.total_yards)} yds, {moved.from_warehouse} -> {moved.to_warehouse}",
            self._transfer_detail(moved),
            tuple(effects),
        )

    @staticmethod
    def _transfer_detail(moved: TransferResult) -> dict[str, Any]:
        return {
            "package_no": moved.package_no,
            "thans": [t.than_no for t in moved.thans],
            "yards": moved.total_yards,
            "from_warehouse": moved.from_warehouse,
            "to_warehouse": moved.to_warehouse,
        }

    def _apply_update_price(self, action: UpdatePrice, actor_id: str, txn_id: str) -> ExecutionOutcome:
        count = self.store.update_price(action.filters, action.price)
        pipeline = EffectPipeline()
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.PRICE_UPDATE, "Inventory", action.filters.label(), actor_id,
                {
                    "filters": action.filters.to_dict(),
                    "price": action.price,
                    "rows": count,
                    "txn_id": txn_id,
                },
            ).seq,
        )
        effects = pipeline.run()
        return ExecutionOutcome(
            action.kind,
            f"Updated price for {action.filters.label()}: "
            f"{fmt_money(action.price, self.currency)}/yard ({count} rows).",
            {"updated": count, "price": action.price, "filters": action.filters.to_dict()},
            tuple(effects),
        )

    def _apply_record_payment(self, action: RecordPayment, actor_id: str, txn_id: str) -> ExecutionOutcome:
        paid = self.customers.record_payment(action.customer, action.amount)
        customer = self.customers.get_customer(paid.customer)
        customer_id = customer.customer_id if customer is not None else paid.customer

        pipeline = EffectPipeline()
        pipeline.add(
            "ledger",
            lambda: [
                e.entry_id
                for e in self.ledger.record_payment_received(
                    paid.customer, paid.paid, action.method, txn_id, actor_id,
                )
            ],
        )
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.PAYMENT_RECEIVED, "Customer", customer_id, actor_id,
                {
                    "amount": paid.paid,
                    "method": action.method,
                    "previous_balance": paid.previous_balance,
                    "new_balance": paid.new_balance,
                    "txn_id": txn_id,
                },
            ).seq,
        )
        effects = pipeline.run()
        return ExecutionOutcome(
            action.kind,
            f"Payment recorded: {fmt_money(paid.paid, self.currency)} from {paid.customer}.\n"
            f"Balance: {fmt_money(paid.previous_balance, self.currency)} -> "
            f"{fmt_money(paid.new_balance, self.currency)}",
            {
                "customer": paid.customer,
                "paid": paid.paid,
                "previous_balance": paid.previous_balance,
                "new_balance": paid.new_balance,
            },
            tuple(effects),
        )

    def _apply_add_customer(self, action: AddCustomer, actor_id: str, txn_id: str) -> ExecutionOutcome:
        result = self.customers.add_customer(
            action.name,
            phone=action.phone,
            address=action.address,
            category=action.category,
            credit_limit=action.credit_limit,
            payment_terms=action.payment_terms,
            notes=action.notes,
        )
        customer = result.customer
        if result.status == "exists":
            return ExecutionOutcome(
                action.kind,
                f'Customer "{customer.name}" already exists ({customer.customer_id}).',
                {"status": "exists", "customer_id": customer.customer_id},
            )

        pipeline = EffectPipeline()
        pipeline.add(
            "audit",
            lambda: self.auditor.record(
                AuditAction.CUSTOMER_CREATED, "Customer", customer.customer_id, actor_id,
                {
                    "name": customer.name,
                    "category": customer.category,
                    "credit_limit": customer.credit_limit,
                    "payment_terms": customer.payment_terms,
                },
            ).seq,
        )
        effects = pipeline.run()
        return ExecutionOutcome(
            action.kind,
            f'Customer "{customer.name}" created ({customer.customer_id}).',
            {"status": "created", "customer_id": customer.customer_id},
            tuple(effects),
        )

    # ------------------------------------------------------------------
    # Stock intake
    # ------------------------------------------------------------------

    def receive_stock(
        self, rows: Iterable[dict[str, Any]], reference_id: str, actor_id: str = "",
    ) -> list[ThanInfo]:
        """
        Insert imported thans and post one purchase_in movement per than.

        Stock arrives through the bulk importer; this is the path it (and
        test seeding) uses so that movement balances start from the
        recorded quantities.
        """
        created = self.store.add_thans(rows)
        for than in created:
            self.movements.record_purchase_in(
                than.design, than.shade, than.package_no, than.than_no,
                than.warehouse, than.yards, reference_id, actor_id,
            )
        logger.info(
            "stock_received",
            extra={"thans": len(created), "reference_id": reference_id},
        )
        return created
