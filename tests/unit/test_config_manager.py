"""Tests for config_manager module."""

import os

import pytest

from cloudstack_cli.config_manager import CloudStackConfig, ConfigManager, EnvironmentConfig
from cloudstack_cli.errors import ConfigError


@pytest.fixture
def prod():
    return EnvironmentConfig(
        url="https://cloud.example.com/client/api", api_key="key", secret_key="secret"
    )


class TestEnvironmentConfig:
    """Tests for EnvironmentConfig."""

    def test_from_dict_defaults_timeout(self):
        env = EnvironmentConfig.from_dict(
            "prod", {"url": "https://c/api", "api_key": "k", "secret_key": "s"}
        )

        assert env.timeout == 60

    def test_from_dict_missing_fields(self):
        with pytest.raises(ConfigError, match="missing: api_key, secret_key"):
            EnvironmentConfig.from_dict("prod", {"url": "https://c/api"})


class TestCloudStackConfig:
    """Tests for CloudStackConfig."""

    def test_to_dict_excludes_none(self):
        assert CloudStackConfig().to_dict() == {}

    def test_from_dict(self):
        config = CloudStackConfig.from_dict(
            {
                "default_environment": "prod",
                "concurrency": 5,
                "environments": {
                    "prod": {"url": "https://c/api", "api_key": "k", "secret_key": "s"}
                },
            }
        )

        assert config.default_environment == "prod"
        assert config.concurrency == 5
        assert config.environments["prod"].url == "https://c/api"


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_missing_file_returns_defaults(self):
        config = ConfigManager.load_config()

        assert config.default_environment is None
        assert config.environments == {}

    def test_custom_path_must_exist(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            ConfigManager.load_config(str(tmp_path / "missing.toml"))

    def test_save_and_load(self, prod, isolated_config):
        ConfigManager.save_config(
            CloudStackConfig(default_environment="prod", environments={"prod": prod})
        )

        config_file = isolated_config / "config.toml"
        assert config_file.exists()
        assert config_file.stat().st_mode & 0o777 == 0o600

        loaded = ConfigManager.load_config()
        assert loaded.default_environment == "prod"
        assert loaded.environments["prod"] == prod

    def test_save_preserves_comments(self, prod, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text("# managed by ops\nconcurrency = 4\n")

        ConfigManager.add_environment("prod", prod, custom_path=str(path))

        text = path.read_text()
        assert "# managed by ops" in text
        assert ConfigManager.load_config(str(path)).concurrency == 4

    def test_load_fixes_insecure_permissions(self, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text("concurrency = 2\n")
        os.chmod(path, 0o644)

        ConfigManager.load_config(str(path))

        assert path.stat().st_mode & 0o777 == 0o600

    def test_load_invalid_toml(self, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text("this is = = not toml")
        os.chmod(path, 0o600)

        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config(str(path))

    def test_first_environment_becomes_default(self, prod):
        config = ConfigManager.add_environment("prod", prod)

        assert config.default_environment == "prod"

        staging = EnvironmentConfig(url="https://staging/api", api_key="k2", secret_key="s2")
        config = ConfigManager.add_environment("staging", staging)
        assert config.default_environment == "prod"

        config = ConfigManager.add_environment("staging", staging, make_default=True)
        assert config.default_environment == "staging"


class TestGetEnvironment:
    """Tests for ConfigManager.get_environment()."""

    def test_named_environment(self, prod):
        ConfigManager.add_environment("prod", prod)

        assert ConfigManager.get_environment("prod") == prod

    def test_default_environment(self, prod):
        ConfigManager.add_environment("prod", prod)

        assert ConfigManager.get_environment() == prod

    def test_unknown_environment(self, prod):
        ConfigManager.add_environment("prod", prod)

        with pytest.raises(ConfigError, match="Available environments: prod"):
            ConfigManager.get_environment("staging")

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("CLOUDSTACK_API_URL", "https://env/api")
        monkeypatch.setenv("CLOUDSTACK_API_KEY", "env-key")
        monkeypatch.setenv("CLOUDSTACK_SECRET_KEY", "env-secret")

        env = ConfigManager.get_environment()

        assert env.url == "https://env/api"
        assert env.api_key == "env-key"

    def test_nothing_configured(self):
        with pytest.raises(ConfigError, match="No environment configured"):
            ConfigManager.get_environment()


class TestBatchDefaults:
    """Malformed batch defaults are configuration errors."""

    @pytest.mark.parametrize(
        "data",
        [
            {"concurrency": "ten"},
            {"concurrency": 0},
            {"concurrency": True},
            {"concurrency": 2.5},
            {"poll_interval": "fast"},
            {"poll_interval": -1},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ConfigError, match="Invalid"):
            CloudStackConfig.from_dict(data)

    def test_valid_values(self):
        config = CloudStackConfig.from_dict({"concurrency": 3, "poll_interval": 0.5})

        assert config.concurrency == 3
        assert config.poll_interval == 0.5

    def test_invalid_value_in_file(self, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text('concurrency = "ten"\n')
        os.chmod(path, 0o600)

        with pytest.raises(ConfigError, match="Invalid concurrency 'ten'"):
            ConfigManager.load_config(str(path))

    def test_invalid_environment_timeout(self):
        with pytest.raises(ConfigError, match="Invalid timeout"):
            EnvironmentConfig.from_dict(
                "prod",
                {"url": "https://c/api", "api_key": "k", "secret_key": "s", "timeout": "1m"},
            )
