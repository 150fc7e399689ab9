"""Environment commands: manage API endpoints and credentials in the config file."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from cloudstack_cli.click_group import CloudStackGroup
from cloudstack_cli.commands._helpers import CliState
from cloudstack_cli.config_manager import ConfigManager, EnvironmentConfig


@click.group(name="environment", cls=CloudStackGroup)
def environment_group():
    """Manage cloudstack-cli environments.

    \b
    Examples:
        cs environment add prod --url https://cloud.example.com/client/api \\
            --api-key KEY --secret-key SECRET
        cs environment list
    """
    pass


@environment_group.command(name="add")
@click.argument("name")
@click.option("--url", required=True, help="API endpoint URL")
@click.option("--api-key", required=True, help="API key")
@click.option("--secret-key", prompt=True, hide_input=True, help="Secret key")
@click.option("--timeout", default=60, type=int, help="Request timeout in seconds (default: 60)")
@click.option("--default", "make_default", is_flag=True, help="Make this the default environment")
@click.pass_obj
def add(
    state: CliState,
    name: str,
    url: str,
    api_key: str,
    secret_key: str,
    timeout: int,
    make_default: bool,
):
    """Add or replace an environment."""
    config = ConfigManager.add_environment(
        name,
        EnvironmentConfig(url=url, api_key=api_key, secret_key=secret_key, timeout=timeout),
        make_default=make_default,
        custom_path=state.config_path,
    )

    suffix = " (default)" if config.default_environment == name else ""
    click.echo(f"Environment '{name}' saved{suffix}.")


@environment_group.command(name="list")
@click.pass_obj
def list_environments(state: CliState):
    """List configured environments."""
    config = ConfigManager.load_config(state.config_path)

    if not config.environments:
        click.echo("No environments configured.")
        return

    table = Table(show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("URL")
    table.add_column("Default", style="green")
    for name, env in sorted(config.environments.items()):
        table.add_row(name, env.url, "*" if name == config.default_environment else "")
    Console().print(table)


__all__ = ["environment_group"]
