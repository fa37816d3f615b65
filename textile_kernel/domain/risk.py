"""
Risk evaluation (``textile_kernel.domain.risk``).

Responsibility
--------------
Pure classification of a requested action for a given actor role into
``safe`` or ``approval_required``.  Two policies exist; exactly one is
active, chosen by configuration (``risk.policy``):

* ``RoleGatedPolicy`` -- any write action by a non-admin needs approval.
* ``ThresholdPolicy`` -- large sales, price changes and historical edits
  need approval; everything else passes.

Architecture position
---------------------
Kernel domain layer.  ZERO I/O.  The orchestrator calls ``evaluate``
before touching the store.

Invariants enforced
-------------------
* Admins are always ``safe`` under both policies.
* Evaluation is deterministic for a given (action, role, policy).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol

from textile_kernel.domain.actions import Action, ActionKind
from textile_kernel.utils.formatting import fmt_qty


class Role(str, Enum):
    """Operator roles."""

    ADMIN = "admin"
    EMPLOYEE = "employee"


class RiskLevel(str, Enum):
    SAFE = "safe"
    APPROVAL_REQUIRED = "approval_required"


WRITE_ACTIONS: frozenset[ActionKind] = frozenset(ActionKind)

ROLE_GATED_REASON = "Non-admin write actions require admin approval."


@dataclass(frozen=True)
class RiskAssessment:
    """Outcome of risk evaluation."""

    risk: RiskLevel
    reason: str = ""

    @property
    def requires_approval(self) -> bool:
        return self.risk == RiskLevel.APPROVAL_REQUIRED

    @classmethod
    def safe(cls) -> RiskAssessment:
        return cls(RiskLevel.SAFE)

    @classmethod
    def escalate(cls, reason: str) -> RiskAssessment:
        return cls(RiskLevel.APPROVAL_REQUIRED, reason)


@dataclass(frozen=True)
class ActionContext:
    """
    Facts about an action that only the store knows.

    The threshold policy needs the yards a sale would deduct and whether
    the action touches a past-dated record.  The orchestrator fills this
    in before evaluation; the role-gated policy ignores it.
    """

    yards: Decimal = Decimal("0")
    is_historical: bool = False


class RiskPolicy(Protocol):
    name: str

    def assess(
        self, action: Action, role: Role, context: ActionContext,
    ) -> RiskAssessment: ...


class RoleGatedPolicy:
    """Every write by a non-admin is deferred to an admin."""

    name = "role_gated"

    def assess(
        self, action: Action, role: Role, context: ActionContext,
    ) -> RiskAssessment:
        if role == Role.ADMIN:
            return RiskAssessment.safe()
        if action.kind in WRITE_ACTIONS:
            return RiskAssessment.escalate(ROLE_GATED_REASON)
        return RiskAssessment.safe()


_SALE_KINDS = frozenset({
    ActionKind.SELL_THAN, ActionKind.SELL_PACKAGE, ActionKind.SELL_BATCH,
})


class ThresholdPolicy:
    """
    Escalate by magnitude instead of by role.

    Args:
        deduction_limit: Sales deducting more yards than this need approval.
    """

    name = "threshold"

    def __init__(self, deduction_limit: Decimal = Decimal("300")):
        self.deduction_limit = Decimal(deduction_limit)

    def assess(
        self, action: Action, role: Role, context: ActionContext,
    ) -> RiskAssessment:
        if role == Role.ADMIN:
            return RiskAssessment.safe()
        if action.kind == ActionKind.UPDATE_PRICE:
            return RiskAssessment.escalate("Price changes require admin approval.")
        if context.is_historical:
            return RiskAssessment.escalate("Editing historical records requires admin approval.")
        if action.kind in _SALE_KINDS and context.yards > self.deduction_limit:
            return RiskAssessment.escalate(
                f"Deduction of {fmt_qty(context.yards)} yards exceeds limit of "
                f"{fmt_qty(self.deduction_limit)}."
            )
        return RiskAssessment.safe()


def build_policy(name: str, deduction_limit: Decimal = Decimal("300")) -> RiskPolicy:
    """
    Construct the configured policy.

    Raises:
        ValueError: If ``name`` is not a known policy.
    """
    if name == RoleGatedPolicy.name:
        return RoleGatedPolicy()
    if name == ThresholdPolicy.name:
        return ThresholdPolicy(deduction_limit)
    raise ValueError(f"Unknown risk policy: {name!r}")


def evaluate(
    action: Action,
    role: Role,
    policy: RiskPolicy | None = None,
    context: ActionContext | None = None,
) -> RiskAssessment:
    """Classify ``action`` for ``role`` under ``policy`` (role-gated by default)."""
    policy = policy or RoleGatedPolicy()
    return policy.assess(action, role, context or ActionContext())
