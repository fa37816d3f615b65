"""
Configuration loading, environment overrides and the config -> kernel
bridges.
"""

from decimal import Decimal

import pytest
import yaml

from textile_config import get_active_config, load_config, parse_config
from textile_config.bridges import (
    build_action_cache,
    build_actor_directory,
    build_orchestrator,
    build_risk_policy,
    build_settings,
)
from textile_config.loader import apply_env_overrides
from textile_config.schema import KernelConfig
from textile_kernel.db.engine import reset_engine
from textile_kernel.domain.actions import SellThan
from textile_kernel.domain.risk import Role, RoleGatedPolicy, ThresholdPolicy
from textile_kernel.services.workflow_orchestrator import ActionStatus


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "textile.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestParse:
    def test_defaults(self):
        config = parse_config({})
        assert config == KernelConfig()
        assert config.risk.policy == "role_gated"
        assert config.concurrency.max_retries == 3

    def test_full_document(self):
        config = parse_config({
            "database_url": "postgresql://textile@localhost/textile",
            "currency": "USD",
            "access": {"admin_ids": [100, 101], "employee_ids": "200, 201"},
            "risk": {"policy": "threshold", "deduction_limit": 150},
            "concurrency": {"max_retries": 5, "lock_timeout_seconds": 2},
            "idempotency": {"ttl_seconds": 30},
            "intent": {"confidence_threshold": 0.9},
            "ledger": {"track_outstanding_on_sale": False},
        })
        assert config.access.admin_ids == ("100", "101")
        assert config.access.employee_ids == ("200", "201")
        assert config.risk.deduction_limit == Decimal("150")
        assert config.concurrency.lock_timeout_seconds == 2.0
        assert config.idempotency.ttl_seconds == 30.0
        assert not config.ledger.track_outstanding_on_sale

    @pytest.mark.parametrize("data", [
        {"risk_policy": "threshold"},
        {"risk": {"policy": "lenient"}},
        {"risk": {"deduction_limit": "lots"}},
        {"concurrency": {"max_retries": 0}},
        {"intent": {"confidence_threshold": 1.5}},
    ])
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            parse_config(data)


class TestEnvironment:
    def test_overrides(self):
        config = apply_env_overrides(parse_config({}), {
            "TEXTILE_DATABASE_URL": "sqlite:///other.db",
            "TEXTILE_ADMIN_IDS": "1,2",
            "TEXTILE_EMPLOYEE_IDS": "",
            "TEXTILE_RISK_POLICY": "threshold",
            "TEXTILE_RISK_THRESHOLD": "75",
            "TEXTILE_CURRENCY": "GHS",
        })
        assert config.database_url == "sqlite:///other.db"
        assert config.access.admin_ids == ("1", "2")
        assert config.access.employee_ids == ()
        assert config.risk.policy == "threshold"
        assert config.risk.deduction_limit == Decimal("75")
        assert config.currency == "GHS"

    def test_file_then_environment(self, config_file):
        path = config_file({"access": {"admin_ids": ["100"]}, "risk": {"deduction_limit": 300}})
        config = load_config(path, {"TEXTILE_RISK_THRESHOLD": "50"})
        assert config.access.admin_ids == ("100",)
        assert config.risk.deduction_limit == Decimal("50")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", {})


class TestActiveConfig:
    def test_explicit_path(self, config_file, monkeypatch, captured_logs):
        for name in ("TEXTILE_RISK_POLICY", "TEXTILE_RISK_THRESHOLD", "TEXTILE_DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)
        path = config_file({"risk": {"policy": "threshold"}})

        config = get_active_config(path)

        assert config.risk.policy == "threshold"
        loaded = [r for r in captured_logs() if r["message"] == "textile_config_loaded"]
        assert loaded[0]["source"] == str(path)
        assert loaded[0]["risk_policy"] == "threshold"
        assert loaded[0]["database"] == "sqlite"

    def test_path_from_environment(self, config_file, monkeypatch):
        path = config_file({"currency": "KES"})
        monkeypatch.setenv("TEXTILE_CONFIG", str(path))
        monkeypatch.delenv("TEXTILE_CURRENCY", raising=False)
        assert get_active_config().currency == "KES"


class TestBridges:
    def test_settings_and_policy(self):
        config = parse_config({
            "risk": {"policy": "threshold", "deduction_limit": 40},
            "concurrency": {"max_retries": 7},
            "intent": {"confidence_threshold": 0.6},
        })
        settings = build_settings(config)
        assert settings.max_retries == 7
        assert settings.confidence_threshold == 0.6
        policy = build_risk_policy(config)
        assert isinstance(policy, ThresholdPolicy)
        assert policy.deduction_limit == Decimal("40")
        assert isinstance(build_risk_policy(KernelConfig()), RoleGatedPolicy)

    def test_actor_directory(self):
        directory = build_actor_directory(
            parse_config({"access": {"admin_ids": [1], "employee_ids": [2]}})
        )
        assert directory.role_of("1") is Role.ADMIN
        assert directory.role_of("2") is Role.EMPLOYEE

    def test_action_cache(self, deterministic_clock):
        cache = build_action_cache(parse_config({"idempotency": {"max_entries": 5}}), deterministic_clock)
        assert cache.max_entries == 5

    def test_orchestrator_on_existing_factory(self, stocked_factory, deterministic_clock, admin, notifier):
        config = parse_config({"access": {"admin_ids": [admin.actor_id], "employee_ids": ["200"]}})
        orchestrator = build_orchestrator(
            config, stocked_factory, notifier=notifier, clock=deterministic_clock,
        )
        result = orchestrator.submit(SellThan("5801", 1, "Ibrahim"), admin)
        assert result.status is ActionStatus.COMPLETED

        # Callback senders are checked against the configured ids
        assert orchestrator.handle_callback("approve:APR-20240315-001", "999") == "Only admins can approve."

    def test_orchestrator_prepares_database(self, tmp_path, deterministic_clock, admin):
        config = parse_config({
            "database_url": f"sqlite:///{tmp_path / 'fresh.db'}",
            "access": {"admin_ids": [admin.actor_id]},
        })
        try:
            orchestrator = build_orchestrator(config, clock=deterministic_clock)
            assert orchestrator.pending_requests(admin) == []
        finally:
            reset_engine()
