"""
Risk evaluation under both policies.
"""

from decimal import Decimal

import pytest

from textile_kernel.domain.actions import (
    RecordPayment,
    SellBatch,
    SellThan,
    TransferPackage,
    UpdatePrice,
)
from textile_kernel.domain.inventory import InventoryFilters
from textile_kernel.domain.risk import (
    ROLE_GATED_REASON,
    ActionContext,
    RiskLevel,
    Role,
    RoleGatedPolicy,
    ThresholdPolicy,
    build_policy,
    evaluate,
)

SAMPLE_ACTIONS = [
    SellThan("5801", 3, "Ibrahim"),
    SellBatch(("5801", "5802"), "Ibrahim"),
    TransferPackage("5801", "Kano"),
    UpdatePrice(InventoryFilters(design="44200"), Decimal("1500")),
    RecordPayment("Ibrahim", Decimal("5000")),
]


class TestRoleGatedPolicy:
    @pytest.mark.parametrize("action", SAMPLE_ACTIONS, ids=lambda a: a.kind.value)
    def test_admin_is_always_safe(self, action):
        assessment = evaluate(action, Role.ADMIN, RoleGatedPolicy())
        assert assessment.risk == RiskLevel.SAFE
        assert not assessment.requires_approval

    @pytest.mark.parametrize("action", SAMPLE_ACTIONS, ids=lambda a: a.kind.value)
    def test_employee_write_needs_approval(self, action):
        assessment = evaluate(action, Role.EMPLOYEE, RoleGatedPolicy())
        assert assessment.requires_approval
        assert assessment.reason == ROLE_GATED_REASON

    def test_default_policy_is_role_gated(self):
        assert evaluate(SellThan("5801", 1, "A"), Role.EMPLOYEE).requires_approval


class TestThresholdPolicy:
    def test_small_sale_is_safe(self):
        policy = ThresholdPolicy(Decimal("300"))
        assessment = evaluate(
            SellThan("5801", 1, "A"), Role.EMPLOYEE, policy, ActionContext(yards=Decimal("10")),
        )
        assert not assessment.requires_approval

    def test_sale_over_limit_needs_approval(self):
        policy = ThresholdPolicy(Decimal("300"))
        assessment = evaluate(
            SellBatch(("5801",), "A"), Role.EMPLOYEE, policy, ActionContext(yards=Decimal("301")),
        )
        assert assessment.requires_approval
        assert "exceeds limit of 300" in assessment.reason

    def test_sale_at_limit_is_safe(self):
        policy = ThresholdPolicy(Decimal("300"))
        assessment = evaluate(
            SellThan("5801", 1, "A"), Role.EMPLOYEE, policy, ActionContext(yards=Decimal("300")),
        )
        assert not assessment.requires_approval

    def test_price_change_needs_approval(self):
        action = UpdatePrice(InventoryFilters(design="44200"), Decimal("1500"))
        assert evaluate(action, Role.EMPLOYEE, ThresholdPolicy()).requires_approval

    def test_historical_edit_needs_approval(self):
        assessment = evaluate(
            TransferPackage("5801", "Kano"), Role.EMPLOYEE, ThresholdPolicy(),
            ActionContext(is_historical=True),
        )
        assert assessment.requires_approval

    def test_transfer_is_safe(self):
        assert not evaluate(TransferPackage("5801", "Kano"), Role.EMPLOYEE, ThresholdPolicy()).requires_approval

    def test_admin_large_sale_is_safe(self):
        assessment = evaluate(
            SellThan("5801", 1, "A"), Role.ADMIN, ThresholdPolicy(Decimal("1")),
            ActionContext(yards=Decimal("500")),
        )
        assert not assessment.requires_approval


class TestBuildPolicy:
    def test_known_names(self):
        assert isinstance(build_policy("role_gated"), RoleGatedPolicy)
        policy = build_policy("threshold", Decimal("120"))
        assert isinstance(policy, ThresholdPolicy)
        assert policy.deduction_limit == Decimal("120")

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown risk policy"):
            build_policy("yolo")
