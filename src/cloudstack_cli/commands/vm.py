"""Virtual machine commands for cloudstack-cli.

This module provides commands for managing virtual machines:
- list: List VMs, optionally running START/STOP/REBOOT on the listed VMs
- list-from-file: Same, for VMs read from a YAML/JSON file
- show: Show all fields of one VM
- create: Deploy one or many VMs
- start/stop/reboot/destroy: Lifecycle actions on one or many VMs
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from cloudstack_cli.click_group import CloudStackGroup
from cloudstack_cli.commands._helpers import (
    OUTPUT_FORMATS,
    CliState,
    batch_exit_code,
    confirm_prompt,
    display_batch_summary,
    parse_ip_network_items,
    print_entity,
    print_virtual_machines,
    scoped_filters,
)
from cloudstack_cli.models import BatchResult, Entity, TargetDescriptor
from cloudstack_cli.orchestrator import JobOrchestrator, VMAction
from cloudstack_cli.resolver import IdentifierResolver, deployment_settings
from cloudstack_cli.selection import NameFilter, build_targets, select_targets

logger = logging.getLogger(__name__)

LIST_COMMANDS = ("START", "STOP", "REBOOT")


def _run(
    state: CliState,
    targets: list[TargetDescriptor],
    action: VMAction,
    concurrency: int | None,
    deadline: float | None,
    confirm: Any = None,
    common_params: dict[str, Any] | None = None,
) -> BatchResult:
    orchestrator = JobOrchestrator(
        state.gateway(),
        config=state.orchestrator_config(),
        progress_callback=lambda msg: click.echo(f"  {msg}"),
    )
    return orchestrator.run_batch(
        targets,
        action,
        concurrency=concurrency,
        deadline=deadline,
        confirm=confirm,
        common_params=common_params,
    )


def _finish(result: BatchResult, operation_name: str) -> None:
    if result.aborted:
        click.echo("Cancelled.")
        return
    display_batch_summary(result, operation_name)
    sys.exit(batch_exit_code(result))


def _execute_list_command(
    state: CliState,
    vms: list[Entity],
    command: str,
    concurrency: int | None,
    deadline: float | None,
    yes: bool,
) -> None:
    action = VMAction.parse(command)
    targets = build_targets(vms, action)
    verb = action.spec.verb
    confirm = None if yes else confirm_prompt(f"\n{verb} the virtual machine(s) above?")
    result = _run(state, targets, action, concurrency, deadline, confirm)
    _finish(result, f"{verb} virtual machines")


concurrency_option = click.option(
    "--concurrency",
    "-C",
    type=click.IntRange(min=1),
    help="Number of concurrent operations (default: 10)",
)
deadline_option = click.option(
    "--deadline",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds to wait for each job before giving up on it",
)


@click.group(name="vm", cls=CloudStackGroup)
def vm_group():
    """Manage virtual machines.

    \b
    Examples:
        cs vm list --project web --command STOP
        cs vm create web-1 web-2 --zone Zone-A --offering small --template ubuntu-20
        cs vm stop web-1 --force
    """
    pass


# ============================================================================
# LIST COMMANDS
# ============================================================================


@vm_group.command(name="list")
@click.option("--project", help="Name of the project (ALL for all projects)")
@click.option("--zone", help="Name of the availability zone")
@click.option("--account", help="Name of the account")
@click.option("--state", "vm_state", help="State of the virtual machine")
@click.option("--keyword", help="Filter by keyword")
@click.option("--name", "name_pattern", help="Filter by VM name (glob pattern)")
@click.option(
    "--filter",
    "filter_expressions",
    multiple=True,
    help="Filter on a listed field, e.g. 'serviceofferingname=small' (repeatable, globs allowed)",
)
@click.option(
    "--command",
    type=click.Choice(LIST_COMMANDS, case_sensitive=False),
    help="Command to execute for the listed virtual machines",
)
@concurrency_option
@deadline_option
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.option("--format", "output_format", type=click.Choice(OUTPUT_FORMATS), default="table")
@click.pass_obj
def list_vms(
    state: CliState,
    project: str | None,
    zone: str | None,
    account: str | None,
    vm_state: str | None,
    keyword: str | None,
    name_pattern: str | None,
    filter_expressions: tuple[str, ...],
    command: str | None,
    concurrency: int | None,
    deadline: float | None,
    yes: bool,
    output_format: str,
):
    """List virtual machines.

    \b
    Examples:
        cs vm list --zone Zone-A
        cs vm list --project ALL --name 'web-*' --command REBOOT -C 5
        cs vm list --filter serviceofferingname=large --filter 'zonename=Zone-*'
    """
    name_filter = NameFilter.parse(filter_expressions)
    if name_pattern:
        name_filter.criteria["name"] = name_pattern

    resolver = IdentifierResolver(state.gateway())
    params = resolver.resolve({"project": project, "zone": zone, "account": account})

    filters: dict[str, Any] = {"listall": True}
    filters.update(scoped_filters(params, "project_id", "zone_id", "account", "domain_id"))
    if vm_state:
        filters["state"] = vm_state
    if keyword:
        filters["keyword"] = keyword

    vms = select_targets(state.gateway().list("virtual_machine", filters), name_filter)
    if not vms:
        click.echo("No virtual machines found.")
        return

    print_virtual_machines(vms, output_format, by_project="project_id" in params)

    if command:
        _execute_list_command(state, vms, command, concurrency, deadline, yes)


@vm_group.command(name="list-from-file")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--command",
    type=click.Choice(LIST_COMMANDS, case_sensitive=False),
    help="Command to execute for the listed virtual machines",
)
@concurrency_option
@deadline_option
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.option("--format", "output_format", type=click.Choice(OUTPUT_FORMATS), default="table")
@click.pass_obj
def list_from_file(
    state: CliState,
    file: Path,
    command: str | None,
    concurrency: int | None,
    deadline: float | None,
    yes: bool,
    output_format: str,
):
    """List virtual machines from a YAML or JSON file.

    The file holds a 'virtual_machines' list as written by
    'cs vm list --format yaml'.
    """
    try:
        with file.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise click.ClickException(f"Failed to parse {file}: {e}") from e

    vms = data.get("virtual_machines") if isinstance(data, dict) else None
    if not isinstance(vms, list):
        raise click.ClickException(f"{file} must contain a 'virtual_machines' list")
    if not vms:
        click.echo("No virtual machines found.")
        return

    print_virtual_machines(vms, output_format, by_project=False)

    if command:
        _execute_list_command(state, vms, command, concurrency, deadline, yes)


@vm_group.command(name="show")
@click.argument("name")
@click.option("--project", help="Name of the project")
@click.pass_obj
def show(state: CliState, name: str, project: str | None):
    """Show detailed information about a virtual machine."""
    resolver = IdentifierResolver(state.gateway())
    params = resolver.resolve({"project": project})
    print_entity(resolver.lookup_virtual_machine(name, params.get("project_id")))


# ============================================================================
# CREATE COMMAND
# ============================================================================


@vm_group.command(name="create")
@click.argument("names", nargs=-1, required=True)
@click.option("--template", "-t", help="Name of the template")
@click.option("--iso", help="Name of the iso")
@click.option("--offering", "-o", required=True, help="Compute offering name")
@click.option("--zone", "-z", required=True, help="Availability zone name")
@click.option("--networks", "-n", multiple=True, help="Network name (repeatable)")
@click.option(
    "--ip-network-list",
    multiple=True,
    help="Network with fixed address, e.g. 'name=net-1,ip=10.0.0.5' (repeatable)",
)
@click.option("--project", "-p", help="Project name")
@click.option("--disk-offering", help="Disk offering (data disk for template, root disk for iso)")
@click.option("--disk-size", type=int, help="Disk size in GB")
@click.option("--hypervisor", help="Hypervisor, only used for iso deployments (default: vmware)")
@click.option("--keypair", help="Name of the SSH keypair to use")
@click.option("--group", help="Group name")
@click.option("--account", help="Account name")
@concurrency_option
@deadline_option
@click.pass_obj
def create(
    state: CliState,
    names: tuple[str, ...],
    template: str | None,
    iso: str | None,
    offering: str,
    zone: str,
    networks: tuple[str, ...],
    ip_network_list: tuple[str, ...],
    project: str | None,
    disk_offering: str | None,
    disk_size: int | None,
    hypervisor: str | None,
    keypair: str | None,
    group: str | None,
    account: str | None,
    concurrency: int | None,
    deadline: float | None,
):
    """Create one or more virtual machines.

    VMs that already exist are reported and skipped.

    \b
    Examples:
        cs vm create web-1 --zone Zone-A --offering small --template ubuntu-20
        cs vm create db-1 -z Zone-A -o large --iso centos --disk-offering 50GB
        cs vm create app-1 -z Zone-A -o small -t ubuntu-20 \\
            --ip-network-list name=net-1,ip=10.0.0.5
    """
    options = {
        "zone": zone,
        "project": project,
        "account": account,
        "offering": offering,
        "template": template,
        "iso": iso,
        "disk_offering": disk_offering,
        "disk_size": disk_size,
        "hypervisor": hypervisor,
        "keypair": keypair,
        "group": group,
        "networks": list(networks),
        "ip_network_list": parse_ip_network_items(ip_network_list),
    }

    resolver = IdentifierResolver(state.gateway())
    params = resolver.resolve_vm_deployment(options)
    # The iso id already sits in the template slot
    common_params = {
        **params.without("account_id", "iso_id").to_dict(),
        **deployment_settings(options, params),
    }
    project_scope = scoped_filters(params, "project_id")

    targets = []
    for name in names:
        existing = resolver.find(
            "virtual machine", "virtual_machine", name, {"listall": True, **project_scope}
        )
        if existing:
            click.echo(f"Virtual machine {name} ({existing.get('state')}) already exists.")
        targets.append(
            TargetDescriptor(
                label=f"Create virtual machine {name}",
                target_id=existing.get("id") if existing else None,
                state=existing.get("state") if existing else None,
                exists=existing is not None,
                params={"name": name, "display_name": name},
            )
        )

    plural = "s" if len(names) > 1 else ""
    click.echo(f"Start deploying virtual machine{plural}...")
    result = _run(
        state, targets, VMAction.CREATE, concurrency, deadline, common_params=common_params
    )
    _finish(result, "Create virtual machines")


# ============================================================================
# LIFECYCLE COMMANDS
# ============================================================================


def _lifecycle(
    state: CliState,
    names: tuple[str, ...],
    action: VMAction,
    project: str | None,
    force: bool,
    concurrency: int | None,
    deadline: float | None,
    common_params: dict[str, Any] | None = None,
) -> None:
    verb = action.spec.verb
    resolver = IdentifierResolver(state.gateway())
    params = resolver.resolve({"project": project})
    vms = [resolver.lookup_virtual_machine(name, params.get("project_id")) for name in names]

    confirm = None
    if not force:
        listing = ", ".join(f"{vm['name']} ({vm.get('state')})" for vm in vms)
        confirm = confirm_prompt(f"{verb} {listing}?")

    result = _run(
        state,
        build_targets(vms, action),
        action,
        concurrency,
        deadline,
        confirm=confirm,
        common_params=common_params,
    )
    _finish(result, f"{verb} virtual machines")


@vm_group.command(name="start")
@click.argument("names", nargs=-1, required=True)
@click.option("--project", help="Project name")
@concurrency_option
@deadline_option
@click.pass_obj
def start(
    state: CliState,
    names: tuple[str, ...],
    project: str | None,
    concurrency: int | None,
    deadline: float | None,
):
    """Start one or more virtual machines.

    \b
    Examples:
        cs vm start web-1 web-2
    """
    _lifecycle(state, names, VMAction.START, project, True, concurrency, deadline)


@vm_group.command(name="stop")
@click.argument("names", nargs=-1, required=True)
@click.option("--project", help="Project name")
@click.option("--force", "-f", is_flag=True, help="Stop without asking")
@click.option("--forced", is_flag=True, help="Force the hypervisor to stop the VM")
@concurrency_option
@deadline_option
@click.pass_obj
def stop(
    state: CliState,
    names: tuple[str, ...],
    project: str | None,
    force: bool,
    forced: bool,
    concurrency: int | None,
    deadline: float | None,
):
    """Stop one or more virtual machines."""
    common = {"forced": True} if forced else None
    _lifecycle(state, names, VMAction.STOP, project, force, concurrency, deadline, common)


@vm_group.command(name="reboot")
@click.argument("names", nargs=-1, required=True)
@click.option("--project", help="Project name")
@click.option("--force", "-f", is_flag=True, help="Reboot without asking")
@concurrency_option
@deadline_option
@click.pass_obj
def reboot(
    state: CliState,
    names: tuple[str, ...],
    project: str | None,
    force: bool,
    concurrency: int | None,
    deadline: float | None,
):
    """Reboot one or more virtual machines."""
    _lifecycle(state, names, VMAction.REBOOT, project, force, concurrency, deadline)


@vm_group.command(name="destroy")
@click.argument("names", nargs=-1, required=True)
@click.option("--project", help="Project name")
@click.option("--force", "-f", is_flag=True, help="Destroy without asking")
@click.option("--expunge", "-E", is_flag=True, help="Expunge the VM immediately")
@concurrency_option
@deadline_option
@click.pass_obj
def destroy(
    state: CliState,
    names: tuple[str, ...],
    project: str | None,
    force: bool,
    expunge: bool,
    concurrency: int | None,
    deadline: float | None,
):
    """Destroy one or more virtual machines."""
    _lifecycle(
        state,
        names,
        VMAction.DESTROY,
        project,
        force,
        concurrency,
        deadline,
        {"expunge": expunge},
    )


__all__ = ["vm_group"]
