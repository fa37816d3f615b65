"""
KernelConfig schema.

Frozen dataclasses the loader fills from YAML (plus environment
overrides).  Every tunable the kernel reads at runtime lives here; no
other module reads files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class AccessConfig:
    """Which operator ids are admins and which are employees."""

    admin_ids: tuple[str, ...] = ()
    employee_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class RiskConfig:
    policy: str = "role_gated"  # "role_gated" or "threshold"
    deduction_limit: Decimal = Decimal("300")


@dataclass(frozen=True)
class ConcurrencyConfig:
    max_retries: int = 3
    retry_backoff_seconds: float = 0.05
    lock_timeout_seconds: float = 10.0


@dataclass(frozen=True)
class IdempotencyConfig:
    ttl_seconds: float = 300.0
    max_entries: int = 10_000


@dataclass(frozen=True)
class IntentConfig:
    confidence_threshold: float = 0.75


@dataclass(frozen=True)
class LedgerConfig:
    # Sales raise the customer's outstanding balance; returns lower it
    track_outstanding_on_sale: bool = True


@dataclass(frozen=True)
class KernelConfig:
    """Complete runtime configuration."""

    database_url: str = "sqlite:///textile.db"
    currency: str = "NGN"
    access: AccessConfig = field(default_factory=AccessConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)
    intent: IntentConfig = field(default_factory=IntentConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
