"""
QueryService -- answers read-only intents.

Stock checks, package listings and details, customer lookups, and the
admin-only trial balance and daybook.  Each answer is a ``QueryReply``:
the text sent back to the operator plus the structured data it was
built from.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from textile_kernel.domain.approval import Actor
from textile_kernel.domain.intent import ParsedIntent
from textile_kernel.domain.inventory import InventoryFilters, ThanStatus
from textile_kernel.exceptions import MissingSlotError, PermissionDeniedError, UnknownActionError
from textile_kernel.logging_config import get_logger
from textile_kernel.services.base import BaseService
from textile_kernel.services.customer_service import CustomerService
from textile_kernel.services.inventory_store import InventoryStore
from textile_kernel.services.ledger_posting import LedgerPostingService
from textile_kernel.utils.formatting import fmt_money, fmt_qty

logger = get_logger("services.query")

HELP_TEXT = """Here's what I can do:

Inventory:
"How much 44200 BLACK do we have?"
"Show packages for design 44200"
"Details of package 5801"
"Sell than 3 from package 5801 to Ibrahim"
"Sell package 5802 to Adamu"
"Sell packages 5801, 5802, 5803 to Ibrahim"
"Return than 2 from package 5801"
"Transfer package 5801 to Kano"
"Transfer packages 5801, 5802 to Kano"
"Transfer than 3 from package 5801 to Kano"
"Update price of 44200 BLACK to 1500"

CRM:
"Add customer Ibrahim, phone +234..., wholesale"
"Show customer Ibrahim"
"Record payment 50000 from Ibrahim via bank"
"What is Ibrahim's outstanding?"

Accounting (admin):
"Show ledger for today"
"Show trial balance"
"""


@dataclass(frozen=True)
class QueryReply:
    text: str
    data: Any = None


class QueryService(BaseService):
    """Read side of the kernel; never writes."""

    def __init__(self, session, clock=None, currency: str = "NGN"):
        super().__init__(session, clock)
        self.currency = currency
        self.store = InventoryStore(session, self.clock)
        self.customers = CustomerService(session, self.clock)
        self.ledger = LedgerPostingService(session, self.clock)

    def _money(self, value) -> str:
        return fmt_money(value, self.currency)

    def answer(self, intent: ParsedIntent, actor: Actor) -> QueryReply:
        """
        Dispatch a read intent.

        Raises:
            UnknownActionError: ``intent.action`` is not a read intent.
            MissingSlotError: A required slot is empty.
            PermissionDeniedError: A non-admin asked for ledger data.
        """
        if intent.action == "check":
            return self.check_stock(intent.filters())
        if intent.action == "list_packages":
            return self.list_packages(intent.design, intent.shade)
        if intent.action == "package_detail":
            return self.package_detail(intent.package_no)
        if intent.action == "check_customer":
            return self.check_customer(intent.customer)
        if intent.action == "check_balance":
            return self.check_balance(intent.customer)
        if intent.action == "trial_balance":
            return self.trial_balance(actor)
        if intent.action == "show_ledger":
            return self.show_ledger(actor)
        raise UnknownActionError(intent.action)

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def check_stock(self, filters: InventoryFilters) -> QueryReply:
        stock = self.store.check_stock(filters)
        parts = [
            f"Design: {filters.design}" if filters.design else None,
            f"Shade: {filters.shade}" if filters.shade else None,
            f"Warehouse: {filters.warehouse}" if filters.warehouse else None,
        ]
        label = ", ".join(p for p in parts if p) or "All stock"
        text = (
            f"{label}\n"
            f"Available: {fmt_qty(stock.total_yards)} yards across {stock.total_thans} thans "
            f"in {stock.total_packages} packages\n"
            f"Value: {self._money(stock.total_value)}"
        )
        if stock.total_thans == 0:
            text += "\nNo available stock matching these filters."
        return QueryReply(text, stock)

    def list_packages(self, design: str | None, shade: str | None = None) -> QueryReply:
        if not design:
            raise MissingSlotError("design", 'Which design? e.g. "Show packages for design 44200"')
        packages = self.store.list_packages(design, shade)
        title = f"{design}{' ' + shade if shade else ''}"
        if not packages:
            return QueryReply(f"No packages found for design {title}.", [])
        lines = [f"Packages for {title}:", ""]
        for pkg in packages:
            lines.append(
                f"Pkg {pkg.package_no} ({pkg.warehouse}): "
                f"{len(pkg.available_thans)}/{pkg.total_thans} thans avail, "
                f"{fmt_qty(pkg.available_yards)} yds"
            )
        total = sum((p.available_yards for p in packages), Decimal("0"))
        lines.extend(["", f"Total available: {fmt_qty(total)} yards"])
        return QueryReply("\n".join(lines), packages)

    def package_detail(self, package_no: str | None) -> QueryReply:
        if not package_no:
            raise MissingSlotError("package_no", 'Which package? e.g. "Details of package 5801"')
        summary = self.store.get_package(package_no)
        if summary is None:
            return QueryReply(f"Package {package_no} not found.")
        lines = [
            f"Package {summary.package_no}",
            f"Design: {summary.design} | Shade: {summary.shade}",
            f"Indent: {summary.indent or '-'} | Warehouse: {summary.warehouse}",
            f"Price: {self._money(summary.price_per_yard)}/yard",
            "",
            f"Thans ({len(summary.available_thans)}/{summary.total_thans} available):",
        ]
        for than in summary.thans:
            marker = "[available]" if than.status == ThanStatus.AVAILABLE else "[sold]"
            sold = f" -> {than.sold_to} ({than.sold_date})" if than.sold_to else ""
            lines.append(f"{marker} Than {than.than_no}: {fmt_qty(than.yards)} yds{sold}")
        lines.extend([
            "",
            f"Available: {fmt_qty(summary.available_yards)} yds | "
            f"Sold: {fmt_qty(summary.sold_yards)} yds",
        ])
        return QueryReply("\n".join(lines), summary)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def check_customer(self, name: str | None) -> QueryReply:
        if not name:
            raise MissingSlotError("customer", 'Which customer? e.g. "Show customer Ibrahim"')
        customer = self.customers.get_customer(name)
        if customer is None:
            return QueryReply(f'Customer "{name}" not found.')
        lines = [
            f"{customer.name} ({customer.customer_id})",
            f"Category: {customer.category} | Status: {customer.status}",
        ]
        if customer.phone:
            lines.append(f"Phone: {customer.phone}")
        if customer.address:
            lines.append(f"Address: {customer.address}")
        lines.extend([
            f"Credit limit: {self._money(customer.credit_limit)}",
            f"Outstanding: {self._money(customer.outstanding_balance)}",
            f"Terms: {customer.payment_terms}",
        ])
        return QueryReply("\n".join(lines), customer)

    def check_balance(self, name: str | None) -> QueryReply:
        if not name:
            raise MissingSlotError("customer", "Which customer?")
        customer = self.customers.get_customer(name)
        if customer is None:
            return QueryReply(f'Customer "{name}" not found.')
        return QueryReply(
            f"{customer.name}: Outstanding balance {self._money(customer.outstanding_balance)} "
            f"(limit: {self._money(customer.credit_limit)})",
            customer,
        )

    # ------------------------------------------------------------------
    # Ledger (admin only)
    # ------------------------------------------------------------------

    @staticmethod
    def _require_admin(actor: Actor, operation: str) -> None:
        if not actor.is_admin:
            logger.info(
                "read_denied",
                extra={"actor_id": actor.actor_id, "operation": operation},
            )
            raise PermissionDeniedError(actor.actor_id, actor.role.value, operation)

    def trial_balance(self, actor: Actor) -> QueryReply:
        self._require_admin(actor, "view the trial balance")
        rows = self.ledger.get_trial_balance()
        if not rows:
            return QueryReply("No ledger entries yet.", [])
        lines = ["Trial Balance", ""]
        for row in rows:
            lines.append(
                f"{row.account_name}: DR {self._money(row.total_debit)} | "
                f"CR {self._money(row.total_credit)}"
            )
        total_dr = sum((r.total_debit for r in rows), Decimal("0"))
        total_cr = sum((r.total_credit for r in rows), Decimal("0"))
        lines.extend(["", f"Totals: DR {self._money(total_dr)} | CR {self._money(total_cr)}"])
        return QueryReply("\n".join(lines), rows)

    def show_ledger(self, actor: Actor, entry_date: str | None = None) -> QueryReply:
        self._require_admin(actor, "view the ledger")
        entry_date = entry_date or self.clock.today_iso()
        entries = self.ledger.get_daybook(entry_date)
        if not entries:
            return QueryReply(f"No ledger entries for {entry_date}.", [])
        lines = [f"Ledger - {entry_date}", ""]
        for entry in entries:
            side = (
                f"DR {self._money(entry.debit)}" if entry.debit
                else f"CR {self._money(entry.credit)}"
            )
            lines.append(f"{entry.ledger_name}: {side} - {entry.narration}")
        return QueryReply("\n".join(lines), entries)
