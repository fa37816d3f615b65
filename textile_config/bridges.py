"""
Config -> Kernel Bridges.

Functions that turn a KernelConfig into kernel objects.  They live in
textile_config (the producer) because the kernel must NEVER import
textile_config.

Usage:
    from textile_config import get_active_config
    from textile_config.bridges import build_orchestrator

    config = get_active_config()
    orchestrator = build_orchestrator(config, notifier=my_bot)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from textile_config.schema import KernelConfig
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.risk import RiskPolicy, build_policy
from textile_kernel.services.actors import ActorDirectory
from textile_kernel.services.idempotency_cache import RecentActionCache
from textile_kernel.services.keyed_lock import KeyedLock
from textile_kernel.services.notification import NotificationBridge
from textile_kernel.services.workflow_orchestrator import (
    OrchestratorSettings,
    WorkflowOrchestrator,
)


def build_settings(config: KernelConfig) -> OrchestratorSettings:
    return OrchestratorSettings(
        max_retries=config.concurrency.max_retries,
        retry_backoff_seconds=config.concurrency.retry_backoff_seconds,
        lock_timeout_seconds=config.concurrency.lock_timeout_seconds,
        confidence_threshold=config.intent.confidence_threshold,
        currency=config.currency,
        track_outstanding_on_sale=config.ledger.track_outstanding_on_sale,
    )


def build_actor_directory(config: KernelConfig) -> ActorDirectory:
    return ActorDirectory(config.access.admin_ids, config.access.employee_ids)


def build_risk_policy(config: KernelConfig) -> RiskPolicy:
    """The configured policy; unknown names raise ValueError."""
    return build_policy(config.risk.policy, config.risk.deduction_limit)


def build_action_cache(config: KernelConfig, clock: Clock | None = None) -> RecentActionCache:
    return RecentActionCache(
        ttl_seconds=config.idempotency.ttl_seconds,
        clock=clock,
        max_entries=config.idempotency.max_entries,
    )


def build_orchestrator(
    config: KernelConfig,
    session_factory: sessionmaker[Session] | None = None,
    notifier: NotificationBridge | None = None,
    clock: Clock | None = None,
) -> WorkflowOrchestrator:
    """
    Assemble a WorkflowOrchestrator from configuration.

    When ``session_factory`` is omitted the database at
    ``config.database_url`` is prepared (tables, listeners, seed rows)
    and its factory is used.
    """
    if session_factory is None:
        from textile_kernel.db.bootstrap import prepare_database

        session_factory = prepare_database(config.database_url)
    clock = clock or SystemClock()
    settings = build_settings(config)
    return WorkflowOrchestrator(
        session_factory,
        settings=settings,
        clock=clock,
        notifier=notifier,
        actors=build_actor_directory(config),
        cache=build_action_cache(config, clock),
        locks=KeyedLock(timeout=settings.lock_timeout_seconds),
        policy=build_risk_policy(config),
    )
