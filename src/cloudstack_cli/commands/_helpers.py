"""Shared helpers for cloudstack-cli commands.

- CliState: per-invocation settings and the lazily built API client
- Rendering of VM listings and batch summaries
- Option parsing helpers
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from cloudstack_cli.api_client import CloudStackClient, CloudStackGateway
from cloudstack_cli.config_manager import ConfigManager
from cloudstack_cli.models import BatchResult, Entity, ItemState
from cloudstack_cli.orchestrator_config import OrchestratorConfig, get_orchestrator_config

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("table", "json", "yaml")


@dataclass
class CliState:
    """Settings shared by all commands of one invocation."""

    config_path: str | None = None
    environment: str | None = None
    gateway_factory: Callable[[], CloudStackGateway] | None = None
    _gateway: CloudStackGateway | None = field(default=None, repr=False)

    def gateway(self) -> CloudStackGateway:
        """Return the API gateway, building it from the configuration on first use."""
        if self._gateway is None:
            if self.gateway_factory is not None:
                self._gateway = self.gateway_factory()
            else:
                env = ConfigManager.get_environment(self.environment, self.config_path)
                logger.debug(f"Using API endpoint {env.url}")
                self._gateway = CloudStackClient(
                    env.url, env.api_key, env.secret_key, timeout=env.timeout
                )
        return self._gateway

    def orchestrator_config(self) -> OrchestratorConfig:
        """Environment defaults overridden by the config file."""
        config = ConfigManager.load_config(self.config_path)
        return get_orchestrator_config().override(
            concurrency=config.concurrency, poll_interval=config.poll_interval
        )


def batch_exit_code(result: BatchResult) -> int:
    """Exit status of a batch: 1 if any item failed, else 0."""
    return 1 if result.failed else 0


def confirm_prompt(question: str) -> Callable[[], bool]:
    return lambda: click.confirm(question, default=False)


def parse_ip_network_items(values: tuple[str, ...]) -> list[dict[str, str]]:
    """Parse ``name=NET,ip=ADDR[,ipv6=..][,mac=..]`` items.

    Raises:
        click.BadParameter: If an item is malformed or has no name
    """
    items = []
    for value in values:
        item: dict[str, str] = {}
        for part in value.split(","):
            if "=" not in part:
                raise click.BadParameter(
                    f"'{value}': expected key=value pairs", param_hint="--ip-network-list"
                )
            key, val = (p.strip() for p in part.split("=", 1))
            item[key] = val
        if not item.get("name"):
            raise click.BadParameter(
                f"'{value}': a network name is required", param_hint="--ip-network-list"
            )
        items.append(item)
    return items


def print_virtual_machines(vms: list[Entity], output_format: str, by_project: bool) -> None:
    """Print VMs as a table, JSON, or YAML."""
    if output_format == "json":
        click.echo(json.dumps({"virtual_machines": vms}, indent=2))
        return
    if output_format == "yaml":
        click.echo(yaml.safe_dump({"virtual_machines": vms}, default_flow_style=False))
        return

    table = Table(show_header=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("State", style="green")
    table.add_column("Offering", style="yellow")
    table.add_column("Zone", style="magenta")
    table.add_column("Project" if by_project else "Account")
    table.add_column("IPs", style="blue")
    for vm in vms:
        table.add_row(
            vm.get("name", ""),
            vm.get("state", ""),
            vm.get("serviceofferingname", ""),
            vm.get("zonename", ""),
            vm.get("project" if by_project else "account", ""),
            " ".join(nic.get("ipaddress", "") for nic in vm.get("nic", [])),
        )
    console = Console()
    console.print(table)
    console.print(f"Total number of virtual machines: {len(vms)}")


def print_entity(entity: Entity) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="yellow")
    table.add_column("Value")
    for key, value in entity.items():
        table.add_row(f"{key}:", str(value))
    Console().print(table)


def display_batch_summary(result: BatchResult, operation_name: str) -> None:
    """Display batch operation summary."""
    click.echo("\n" + "=" * 80)
    click.echo(f"{operation_name} Summary")
    click.echo("=" * 80)
    click.echo(result.format_summary())
    click.echo("=" * 80)

    skipped = [o for o in result if o.state is ItemState.SKIPPED]
    if skipped:
        click.echo("\nSkipped:")
        for outcome in skipped:
            click.echo(f"  - {outcome.label}: {outcome.message}")

    if result.failed:
        click.echo("\nFailed:")
        for failure in result.get_failures():
            click.echo(f"  - {failure.label} ({failure.reason}): {failure.message}")


def scoped_filters(params: Any, *keys: str) -> dict[str, Any]:
    """Pick the resolved ids in ``keys`` that are set."""
    return {key: params[key] for key in keys if params.get(key)}
