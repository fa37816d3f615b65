"""
StockMovementLog: append-only movements with a materialized balance that
always equals the scan.
"""

from decimal import Decimal

import pytest

from textile_kernel.exceptions import InvalidAmountError
from textile_kernel.services.stock_movement_log import (
    PURCHASE_IN,
    RETURN_IN,
    SALE_OUT,
    StockMovementLog,
)


@pytest.fixture
def log(session, deterministic_clock):
    return StockMovementLog(session, deterministic_clock)


class TestMovements:
    def test_purchase_then_sale(self, log):
        log.record_purchase_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "IMP-1")
        sale = log.record_sale_out("44200", "BLACK", "5801", 1, "Lagos", Decimal("4"), "TXN-1")
        assert sale.type == SALE_OUT
        assert sale.qty_out == Decimal("4")
        assert sale.qty_in == Decimal("0")
        assert sale.item_id == "44200-BLACK"
        assert sale.entry_id.startswith("SL-20240315-")
        assert log.compute_stock("44200-BLACK", "Lagos") == Decimal("6")

    def test_return_adds_back(self, log):
        log.record_purchase_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "IMP-1")
        log.record_sale_out("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "TXN-1")
        ret = log.record_return_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "TXN-2")
        assert ret.type == RETURN_IN
        assert log.compute_stock("44200-black", "Lagos") == Decimal("10")

    def test_balance_is_per_branch(self, log):
        log.record_purchase_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "IMP-1")
        log.record_purchase_in("44200", "BLACK", "5901", 1, "Kano", Decimal("7"), "IMP-1")
        assert log.compute_stock("44200-BLACK", "Kano") == Decimal("7")
        assert log.compute_stock("44200-BLACK", "Abuja") == Decimal("0")

    def test_non_positive_qty_rejected(self, log):
        with pytest.raises(InvalidAmountError):
            log.record_sale_out("44200", "BLACK", "5801", 1, "Lagos", Decimal("0"), "TXN-1")

    def test_materialized_equals_scan(self, log):
        log.record_purchase_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "IMP-1")
        log.record_purchase_in("44200", "BLACK", "5801", 2, "Lagos", Decimal("12.5"), "IMP-1")
        log.record_sale_out("44200", "BLACK", "5801", 2, "Lagos", Decimal("12.5"), "TXN-1")
        log.record_return_in("44200", "BLACK", "5801", 2, "Lagos", Decimal("12.5"), "TXN-2")
        for level in log.compute_all_stock():
            assert level.on_hand == log.compute_stock_by_scan(level.item_id, level.branch)

    def test_movements_for_reference(self, log):
        log.record_purchase_in("44200", "BLACK", "5801", 1, "Lagos", Decimal("10"), "IMP-1")
        log.record_purchase_in("44200", "BLACK", "5801", 2, "Lagos", Decimal("12"), "IMP-1")
        movements = log.movements_for("IMP-1")
        assert [m.than_no for m in movements] == [1, 2]
        assert {m.type for m in movements} == {PURCHASE_IN}
