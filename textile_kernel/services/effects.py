"""
EffectPipeline -- ordered side effects of one inventory mutation.

Responsibility:
    Runs the follow-up writes of a mutation (stock movement, ledger pair,
    customer balance, audit event) one after another inside the same
    transaction as the mutation, and records what each one did.

Invariants enforced:
    - Effects run in registration order.
    - The first failing effect stops the pipeline and re-raises; the
      caller's transaction rolls back the mutation together with every
      effect already flushed.
    - Effects after a failure are recorded as ``skipped``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from textile_kernel.logging_config import get_logger

logger = get_logger("services.effects")


class EffectStatus(str, Enum):
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class EffectOutcome:
    name: str
    status: EffectStatus
    detail: Any = None


class EffectPipeline:
    """Collects named effects, then runs them in order."""

    def __init__(self) -> None:
        self._effects: list[tuple[str, Callable[[], Any]]] = []
        self.outcomes: list[EffectOutcome] = []

    def add(self, name: str, effect: Callable[[], Any]) -> EffectPipeline:
        self._effects.append((name, effect))
        return self

    def run(self) -> list[EffectOutcome]:
        self.outcomes = []
        for index, (name, effect) in enumerate(self._effects):
            try:
                detail = effect()
            except Exception as exc:
                self.outcomes.append(EffectOutcome(name, EffectStatus.FAILED, str(exc)))
                self.outcomes.extend(
                    EffectOutcome(rest, EffectStatus.SKIPPED)
                    for rest, _ in self._effects[index + 1:]
                )
                logger.error(
                    "effect_failed",
                    extra={"effect": name, "error": str(exc)},
                    exc_info=True,
                )
                raise
            self.outcomes.append(EffectOutcome(name, EffectStatus.APPLIED, detail))
            logger.debug("effect_applied", extra={"effect": name})
        return list(self.outcomes)
