"""Pytest configuration and fixtures for cloudstack-cli tests.

CRITICAL: Protects the user's configuration from test modifications.
"""

import os

import pytest


@pytest.fixture(scope="session", autouse=True)
def prevent_real_api_calls():
    """Prevent tests from reaching a real control plane.

    Clears the CLOUDSTACK_API_* variables for the session so that an ad-hoc
    environment exported in the developer's shell is never picked up.
    """
    saved = {
        key: os.environ.pop(key)
        for key in ("CLOUDSTACK_API_URL", "CLOUDSTACK_API_KEY", "CLOUDSTACK_SECRET_KEY")
        if key in os.environ
    }

    yield

    os.environ.update(saved)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point ConfigManager at a config directory under tmp_path.

    Tests never read or write ~/.cloudstack-cli/config.toml.
    """
    from cloudstack_cli.config_manager import ConfigManager

    config_dir = tmp_path / ".cloudstack-cli"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    return config_dir


@pytest.fixture(autouse=True)
def fast_polling(monkeypatch):
    """Poll without delay and reload orchestrator settings around each test."""
    from cloudstack_cli.orchestrator_config import reset_orchestrator_config

    for key in ("CLOUDSTACK_CLI_CONCURRENCY", "CLOUDSTACK_CLI_DEADLINE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CLOUDSTACK_CLI_POLL_INTERVAL", "0")
    reset_orchestrator_config()
    yield
    reset_orchestrator_config()
