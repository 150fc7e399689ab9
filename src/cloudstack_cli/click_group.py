"""Click group that turns errors into messages and exit codes.

Commands raise; they never print an error and exit themselves. The group
is the one place that maps what escapes a command:

- usage errors: the message, then the help of the failing command
- unknown commands: the message, then the help of the group (exit 1)
- CloudStackCliError: ``Error: <message>`` on stderr (exit 1)
"""

import logging
from typing import Any, NoReturn

import click

from cloudstack_cli.errors import CloudStackCliError

logger = logging.getLogger(__name__)


def _exit_with_help(ctx: click.Context, error: click.UsageError, code: int) -> NoReturn:
    click.echo(f"Error: {error.format_message()}", err=True)
    click.echo("")
    click.echo(ctx.get_help())
    ctx.exit(code)


class CloudStackGroup(click.Group):
    """Group class for ``cs`` and every command group below it."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except click.UsageError as e:
            # e.ctx is the failing subcommand when Click knows it
            _exit_with_help(e.ctx or ctx, e, e.exit_code)
        except CloudStackCliError as e:
            logger.debug(f"{ctx.command_path} failed", exc_info=True)
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)

    def resolve_command(
        self, ctx: click.Context, args: list[str]
    ) -> tuple[str | None, click.Command | None, list[str]]:
        """Show the group help when the command does not exist."""
        try:
            return super().resolve_command(ctx, args)
        except click.BadParameter:
            # Includes MissingParameter; invoke() reports those
            raise
        except click.UsageError as e:
            _exit_with_help(ctx, e, 1)
