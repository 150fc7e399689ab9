"""Tests for orchestrator configuration."""

import pytest

from cloudstack_cli.orchestrator_config import (
    OrchestratorConfig,
    get_orchestrator_config,
    reset_orchestrator_config,
)


class TestOrchestratorConfig:
    """Tests for OrchestratorConfig."""

    def test_defaults(self):
        config = OrchestratorConfig()

        assert config.concurrency == 10
        assert config.poll_interval == 2.0
        assert config.poll_max_retries == 3
        assert config.deadline is None

    @pytest.mark.parametrize(
        "values",
        [
            {"concurrency": 0},
            {"poll_interval": -1},
            {"poll_max_retries": -1},
            {"deadline": 0},
        ],
    )
    def test_rejects_invalid_values(self, values):
        with pytest.raises(ValueError):
            OrchestratorConfig(**values)

    def test_override_ignores_none(self):
        config = OrchestratorConfig(concurrency=5)

        assert config.override(concurrency=None, deadline=None) is config
        assert config.override(concurrency=2, deadline=30).concurrency == 2
        assert config.override(deadline=30).deadline == 30

    def test_override_validates(self):
        with pytest.raises(ValueError):
            OrchestratorConfig().override(concurrency=0)


class TestFromEnvironment:
    """Tests for environment variable loading."""

    def test_reads_variables(self, monkeypatch):
        monkeypatch.setenv("CLOUDSTACK_CLI_CONCURRENCY", "4")
        monkeypatch.setenv("CLOUDSTACK_CLI_POLL_INTERVAL", "0.5")
        monkeypatch.setenv("CLOUDSTACK_CLI_POLL_MAX_RETRIES", "6")
        monkeypatch.setenv("CLOUDSTACK_CLI_DEADLINE", "120")

        config = OrchestratorConfig.from_environment()

        assert config == OrchestratorConfig(
            concurrency=4, poll_interval=0.5, poll_max_retries=6, deadline=120.0
        )

    def test_global_config_is_cached_until_reset(self, monkeypatch):
        first = get_orchestrator_config()
        monkeypatch.setenv("CLOUDSTACK_CLI_CONCURRENCY", "3")

        assert get_orchestrator_config() is first

        reset_orchestrator_config()
        assert get_orchestrator_config().concurrency == 3
