"""
Action payloads: what the approval queue stores is what replay rebuilds.
"""

from decimal import Decimal

import pytest

from textile_kernel.domain.actions import (
    ActionKind,
    AddCustomer,
    RecordPayment,
    ReturnPackage,
    SellBatch,
    SellThan,
    TransferThan,
    UpdatePrice,
    _ActionMixin,
    action_from_payload,
)
from textile_kernel.domain.inventory import InventoryFilters
from textile_kernel.exceptions import InvalidAmountError, UnknownActionError


class TestPayloadReconstruction:
    """Captured payloads rebuild the same typed action."""

    @pytest.mark.parametrize(
        "action",
        [
            SellThan("5801", 3, "Ibrahim"),
            SellBatch(("5801", "5802"), "Adamu"),
            ReturnPackage("5801"),
            TransferThan("5801", 2, "Kano"),
            UpdatePrice(InventoryFilters(design="44200", shade="BLACK"), Decimal("1500")),
            RecordPayment("Ibrahim", Decimal("50000"), "bank"),
            AddCustomer("Ibrahim", phone="+234", credit_limit=Decimal("100000")),
        ],
        ids=lambda a: a.kind.value,
    )
    def test_payload_rebuilds_equal_action(self, action):
        assert action_from_payload(action.to_payload()) == action

    def test_payload_carries_kind(self):
        payload = SellThan("5801", 3, "Ibrahim").to_payload()
        assert payload == {
            "kind": "sell_than",
            "package_no": "5801",
            "than_no": 3,
            "customer": "Ibrahim",
        }

    def test_unknown_kind_rejected(self):
        with pytest.raises(UnknownActionError):
            action_from_payload({"kind": "burn_package", "package_no": "5801"})

    def test_garbage_price_rejected(self):
        with pytest.raises(InvalidAmountError):
            action_from_payload({"kind": "update_price", "filters": {"design": "44200"}, "price": "abc"})


class TestFingerprint:
    def test_same_content_same_fingerprint(self):
        assert SellThan("5801", 3, "Ibrahim").fingerprint() == SellThan("5801", 3, "Ibrahim").fingerprint()

    def test_different_content_different_fingerprint(self):
        assert SellThan("5801", 3, "Ibrahim").fingerprint() != SellThan("5801", 2, "Ibrahim").fingerprint()


class TestPackageNumbers:
    def test_batch_lists_every_package(self):
        assert SellBatch(("5801", "5802"), "Adamu").package_nos == ("5801", "5802")

    def test_non_inventory_action_touches_no_package(self):
        assert RecordPayment("Ibrahim", Decimal("1")).package_nos == ()
        assert AddCustomer("Ibrahim").kind is ActionKind.ADD_CUSTOMER


class TestActionBase:
    def test_action_without_fields_cannot_be_built(self):
        class Bare(_ActionMixin):
            kind = ActionKind.RETURN_PACKAGE

        with pytest.raises(TypeError):
            Bare()
