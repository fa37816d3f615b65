"""
YAML loader for ``KernelConfig``.

Reads a YAML document into the frozen schema, then applies environment
overrides.  Unknown top-level keys are rejected so a typo does not
silently fall back to a default.

Environment overrides (applied after the file):

    TEXTILE_DATABASE_URL     database_url
    TEXTILE_ADMIN_IDS        access.admin_ids (comma separated)
    TEXTILE_EMPLOYEE_IDS     access.employee_ids (comma separated)
    TEXTILE_RISK_POLICY      risk.policy
    TEXTILE_RISK_THRESHOLD   risk.deduction_limit
    TEXTILE_CURRENCY         currency

Failure modes:
    * Missing file            -> ``FileNotFoundError`` propagates.
    * Malformed YAML          -> ``yaml.YAMLError`` propagates.
    * Bad values / keys       -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from textile_config.schema import (
    AccessConfig,
    ConcurrencyConfig,
    IdempotencyConfig,
    IntentConfig,
    KernelConfig,
    LedgerConfig,
    RiskConfig,
)

_KNOWN_SECTIONS = frozenset({
    "database_url", "currency", "access", "risk", "concurrency",
    "idempotency", "intent", "ledger",
})

_RISK_POLICIES = frozenset({"role_gated", "threshold"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _ids(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(str(v).strip() for v in value if str(v).strip())


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def parse_access(data: Mapping[str, Any]) -> AccessConfig:
    return AccessConfig(
        admin_ids=_ids(data.get("admin_ids")),
        employee_ids=_ids(data.get("employee_ids")),
    )


def parse_risk(data: Mapping[str, Any]) -> RiskConfig:
    policy = str(data.get("policy", "role_gated"))
    if policy not in _RISK_POLICIES:
        raise ValueError(f"risk.policy must be one of {sorted(_RISK_POLICIES)}, got {policy!r}")
    return RiskConfig(
        policy=policy,
        deduction_limit=_decimal(data.get("deduction_limit", "300"), "risk.deduction_limit"),
    )


def parse_concurrency(data: Mapping[str, Any]) -> ConcurrencyConfig:
    config = ConcurrencyConfig(
        max_retries=int(data.get("max_retries", 3)),
        retry_backoff_seconds=float(data.get("retry_backoff_seconds", 0.05)),
        lock_timeout_seconds=float(data.get("lock_timeout_seconds", 10.0)),
    )
    if config.max_retries < 1:
        raise ValueError("concurrency.max_retries must be at least 1")
    return config


def parse_idempotency(data: Mapping[str, Any]) -> IdempotencyConfig:
    return IdempotencyConfig(
        ttl_seconds=float(data.get("ttl_seconds", 300)),
        max_entries=int(data.get("max_entries", 10_000)),
    )


def parse_intent(data: Mapping[str, Any]) -> IntentConfig:
    threshold = float(data.get("confidence_threshold", 0.75))
    if not 0 <= threshold <= 1:
        raise ValueError("intent.confidence_threshold must be between 0 and 1")
    return IntentConfig(confidence_threshold=threshold)


def parse_ledger(data: Mapping[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        track_outstanding_on_sale=bool(data.get("track_outstanding_on_sale", True)),
    )


def parse_config(data: Mapping[str, Any]) -> KernelConfig:
    """Build a KernelConfig from an already-parsed mapping."""
    unknown = set(data) - _KNOWN_SECTIONS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
    defaults = KernelConfig()
    return KernelConfig(
        database_url=str(data.get("database_url", defaults.database_url)),
        currency=str(data.get("currency", defaults.currency)),
        access=parse_access(data.get("access") or {}),
        risk=parse_risk(data.get("risk") or {}),
        concurrency=parse_concurrency(data.get("concurrency") or {}),
        idempotency=parse_idempotency(data.get("idempotency") or {}),
        intent=parse_intent(data.get("intent") or {}),
        ledger=parse_ledger(data.get("ledger") or {}),
    )


def apply_env_overrides(config: KernelConfig, environ: Mapping[str, str] | None = None) -> KernelConfig:
    env = os.environ if environ is None else environ

    if env.get("TEXTILE_DATABASE_URL"):
        config = replace(config, database_url=env["TEXTILE_DATABASE_URL"])
    if env.get("TEXTILE_CURRENCY"):
        config = replace(config, currency=env["TEXTILE_CURRENCY"])

    access = config.access
    if "TEXTILE_ADMIN_IDS" in env:
        access = replace(access, admin_ids=_ids(env["TEXTILE_ADMIN_IDS"]))
    if "TEXTILE_EMPLOYEE_IDS" in env:
        access = replace(access, employee_ids=_ids(env["TEXTILE_EMPLOYEE_IDS"]))

    risk = config.risk
    if env.get("TEXTILE_RISK_POLICY"):
        risk = parse_risk({"policy": env["TEXTILE_RISK_POLICY"], "deduction_limit": risk.deduction_limit})
    if env.get("TEXTILE_RISK_THRESHOLD"):
        risk = replace(
            risk, deduction_limit=_decimal(env["TEXTILE_RISK_THRESHOLD"], "TEXTILE_RISK_THRESHOLD"),
        )

    return replace(config, access=access, risk=risk)


def load_config(path: Path | str | None = None, environ: Mapping[str, str] | None = None) -> KernelConfig:
    """
    Load configuration from ``path`` (defaults only when None), then
    apply environment overrides.
    """
    data = load_yaml_file(Path(path)) if path is not None else {}
    return apply_env_overrides(parse_config(data), environ)
