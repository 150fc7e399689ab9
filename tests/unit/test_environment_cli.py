"""Tests for the environment command group and gateway construction."""

import pytest
from click.testing import CliRunner

from cloudstack_cli.api_client import CloudStackClient
from cloudstack_cli.cli import main
from cloudstack_cli.commands._helpers import CliState
from cloudstack_cli.config_manager import ConfigManager
from cloudstack_cli.errors import ConfigError


@pytest.fixture
def runner():
    return CliRunner()


def add_prod(runner, *extra):
    return runner.invoke(
        main,
        [
            "environment", "add", "prod",
            "--url", "https://cloud.example.com/client/api",
            "--api-key", "prod-key", "--secret-key", "prod-secret",
            *extra,
        ],
        obj=CliState(),
    )  # fmt: skip


class TestEnvironmentCommands:
    """Tests for 'cs environment'."""

    def test_add_first_environment(self, runner):
        result = add_prod(runner)

        assert result.exit_code == 0
        assert "Environment 'prod' saved (default)." in result.output
        assert ConfigManager.get_environment("prod").api_key == "prod-key"

    def test_add_with_timeout(self, runner):
        add_prod(runner, "--timeout", "15")

        assert ConfigManager.get_environment("prod").timeout == 15

    def test_secret_key_prompted(self, runner):
        result = runner.invoke(
            main,
            ["env", "add", "lab", "--url", "https://lab/api", "--api-key", "lab-key"],
            obj=CliState(),
            input="lab-secret\n",
        )

        assert result.exit_code == 0
        assert ConfigManager.get_environment("lab").secret_key == "lab-secret"

    def test_list(self, runner):
        add_prod(runner)

        result = runner.invoke(main, ["env", "list"], obj=CliState())

        assert result.exit_code == 0
        assert "prod" in result.output
        assert "prod-secret" not in result.output

    def test_list_empty(self, runner):
        result = runner.invoke(main, ["environment", "list"], obj=CliState())

        assert "No environments configured." in result.output


class TestCliState:
    """Tests for gateway construction from configuration."""

    def test_builds_client_from_default_environment(self, runner):
        add_prod(runner, "--timeout", "20")

        gateway = CliState().gateway()

        assert isinstance(gateway, CloudStackClient)
        assert gateway.url == "https://cloud.example.com/client/api"
        assert gateway.timeout == 20

    def test_gateway_built_once(self):
        built = []

        def factory():
            built.append(object())
            return built[-1]

        state = CliState(gateway_factory=factory)

        assert state.gateway() is state.gateway()
        assert len(built) == 1

    def test_no_environment(self):
        with pytest.raises(ConfigError):
            CliState().gateway()

    def test_config_file_overrides_orchestrator_defaults(self, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text("concurrency = 3\n")
        path.chmod(0o600)

        config = CliState(config_path=str(path)).orchestrator_config()

        assert config.concurrency == 3
        assert config.poll_interval == 0


class TestMainGroup:
    def test_help_without_command(self, runner):
        result = runner.invoke(main, [], obj=CliState())

        assert result.exit_code == 0
        assert "manage virtual machines" in result.output

    def test_unknown_command_shows_help(self, runner):
        result = runner.invoke(main, ["vms"], obj=CliState())

        assert result.exit_code == 1
        assert "No such command" in result.output

    def test_environment_error_reported_once(self, runner):
        result = runner.invoke(main, ["vm", "show", "web-1"], obj=CliState())

        assert result.exit_code == 1
        assert result.output.count("Error: No environment configured.") == 1

    def test_malformed_config_reported(self, runner, tmp_path):
        path = tmp_path / "cs.toml"
        path.write_text("concurrency = 0\n")
        path.chmod(0o600)

        result = runner.invoke(main, ["--config", str(path), "env", "list"], obj=CliState())

        assert result.exit_code == 1
        assert "Error: Invalid concurrency 0" in result.output
