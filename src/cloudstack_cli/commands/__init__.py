"""Command groups for cloudstack-cli."""

from cloudstack_cli.commands.environment import environment_group
from cloudstack_cli.commands.vm import vm_group

__all__ = ["environment_group", "vm_group"]
