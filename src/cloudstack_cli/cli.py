"""Command-line entry point for cloudstack-cli (``cs``)."""

import logging

import click

from cloudstack_cli import __version__
from cloudstack_cli.click_group import CloudStackGroup
from cloudstack_cli.commands import environment_group, vm_group
from cloudstack_cli.commands._helpers import CliState


@click.group(
    cls=CloudStackGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)
@click.option("--config", "-c", "config_path", type=click.Path(), help="Config file path")
@click.option("--env", "-e", "environment", help="Environment to use")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.version_option(version=__version__)
@click.pass_context
def main(
    ctx: click.Context, config_path: str | None, environment: str | None, debug: bool
) -> None:
    """cs - manage virtual machines on a CloudStack control plane.

    \b
    CONFIGURATION:
        Config file: ~/.cloudstack-cli/config.toml
        Add an environment: cs environment add NAME --url URL --api-key KEY

    For help on any command: cs <command> --help
    """
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format="%(message)s")

    if ctx.obj is None:
        ctx.obj = CliState()
    ctx.obj.config_path = config_path or ctx.obj.config_path
    ctx.obj.environment = environment or ctx.obj.environment

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


main.add_command(vm_group)
main.add_command(environment_group)
main.add_command(environment_group, name="env")


if __name__ == "__main__":
    main()
