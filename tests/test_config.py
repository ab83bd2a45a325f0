"""Tests for configuration loading."""

import pytest

from kubarango.config.provider import EnvConfigProvider
from kubarango.config.timeouts import GlobalTimeouts, Timeout
from kubarango.modules.config import REQUIRED_CONFIG_KEYS, ConfigModule


class TestConfigModule:
    def test_defaults_cover_required_keys(self, monkeypatch):
        monkeypatch.delenv("REDIS_PORT", raising=False)
        config = ConfigModule()
        for key in REQUIRED_CONFIG_KEYS:
            assert config.get(key) is not None
        assert config.get("redis_port") == 6379

    def test_service_link_redis_port(self, monkeypatch):
        monkeypatch.setenv("REDIS_PORT", "tcp://10.0.0.12:6380")
        assert ConfigModule().get("redis_port") == 6380

    def test_interval_bounds_are_checked(self, monkeypatch):
        monkeypatch.setenv("RECONCILE_INTERVAL", "90")
        monkeypatch.setenv("MAX_RECONCILE_INTERVAL", "60")
        with pytest.raises(ValueError, match="RECONCILE_INTERVAL"):
            ConfigModule()

    def test_non_positive_interval_rejected(self, monkeypatch):
        monkeypatch.setenv("RECONCILE_INTERVAL", "0")
        with pytest.raises(ValueError, match="must be positive"):
            ConfigModule()

    def test_redis_url(self, monkeypatch):
        monkeypatch.setenv("REDIS_HOST", "store")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_DB", "2")
        monkeypatch.setenv("REDIS_PASSWORD", "secret")
        assert ConfigModule().redis_url() == "redis://store:6380/2"


class TestEnvConfigProvider:
    def test_scaling_defaults(self, monkeypatch):
        monkeypatch.delenv("CLUSTER_SCALING_PERIOD", raising=False)
        monkeypatch.delenv("CLUSTER_BOOTSTRAP_GRACE", raising=False)
        scaling = EnvConfigProvider().get_scaling_config()
        assert scaling.enabled
        assert scaling.period == 2.0
        assert scaling.bootstrap_grace == 120.0

    def test_feature_lists(self, monkeypatch):
        monkeypatch.setenv("FEATURES_ENABLED", "short-pod-names, random-pod-names")
        monkeypatch.setenv("FEATURES_DISABLED", "graceful-shutdown")
        features = EnvConfigProvider().get_feature_config()
        assert features.enabled == frozenset({"short-pod-names", "random-pod-names"})
        assert features.disabled == frozenset({"graceful-shutdown"})

    def test_arangod_basic_auth(self, monkeypatch):
        monkeypatch.setenv("ARANGOD_USERNAME", "root")
        monkeypatch.delenv("ARANGOD_JWT_TOKEN", raising=False)
        arangod = EnvConfigProvider().get_arangod_config()
        assert arangod.has_basic_auth
        assert arangod.port == 8529

    def test_action_budgets(self, monkeypatch):
        monkeypatch.setenv("TIMEOUT_DEFAULT_ACTION", "120")
        monkeypatch.setenv("TIMEOUT_SHORT_ACTION", "10")
        timeouts = GlobalTimeouts(EnvConfigProvider().get_timeout_config())
        assert timeouts.default_action == 120.0
        assert timeouts.short_action == 10.0


class TestTimeouts:
    def test_defaults(self):
        timeouts = GlobalTimeouts()
        assert timeouts.kubernetes().seconds == 15.0
        assert timeouts.store().seconds == 5.0
        assert timeouts.default_action == 600.0
        assert timeouts.short_action == 30.0

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self):
        import asyncio

        with pytest.raises(asyncio.TimeoutError):
            await Timeout(0.01).run(asyncio.sleep(1))

    @pytest.mark.asyncio
    async def test_result_passes_through(self):
        async def value():
            return 42

        assert await Timeout(1).run(value()) == 42
