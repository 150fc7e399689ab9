"""Target selection for batch operations.

- NameFilter: field -> exact value, glob pattern, or the ALL sentinel
- select_targets: filter listed entities by a NameFilter
- build_targets: turn VM entities into batch TargetDescriptors
"""

import fnmatch
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from cloudstack_cli.errors import ResolutionError
from cloudstack_cli.models import Entity, TargetDescriptor
from cloudstack_cli.orchestrator import VMAction

logger = logging.getLogger(__name__)

ALL = "ALL"
_GLOB_CHARS = set("*?[")


@dataclass
class NameFilter:
    """Mapping from entity field to an exact value, a glob pattern, or ALL."""

    criteria: dict[str, str] = field(default_factory=dict)

    @classmethod
    def parse(cls, expressions: Iterable[str]) -> "NameFilter":
        """Parse ``field=value`` expressions.

        Raises:
            ResolutionError: If an expression has no '=' or an empty field
        """
        criteria = {}
        for expression in expressions:
            if "=" not in expression:
                raise ResolutionError(
                    f"Invalid filter format: '{expression}'. Expected 'field=value'",
                    field="filter",
                    value=expression,
                )
            key, value = (part.strip() for part in expression.split("=", 1))
            if not key:
                raise ResolutionError(
                    f"Invalid filter format: '{expression}'. Field cannot be empty",
                    field="filter",
                    value=expression,
                )
            criteria[key] = value
        return cls(criteria)

    def matches(self, entity: Mapping[str, object]) -> bool:
        for key, expected in self.criteria.items():
            if expected == ALL:
                continue
            actual = entity.get(key)
            if actual is None:
                return False
            if _GLOB_CHARS & set(expected):
                if not fnmatch.fnmatchcase(str(actual), expected):
                    return False
            elif str(actual) != expected:
                return False
        return True


def select_targets(entities: Iterable[Entity], name_filter: NameFilter | None) -> list[Entity]:
    """Return the entities matching ``name_filter``, in catalog order."""
    entities = list(entities)
    if name_filter is None or not name_filter.criteria:
        return entities
    selected = [entity for entity in entities if name_filter.matches(entity)]
    logger.debug(f"Selected {len(selected)} of {len(entities)} entities")
    return selected


def build_targets(vms: Iterable[Entity], action: VMAction) -> list[TargetDescriptor]:
    """Describe listed VMs as batch items for ``action``."""
    verb = action.spec.verb
    return [
        TargetDescriptor(
            label=f"{verb} virtual machine {vm.get('name')}",
            target_id=vm.get("id"),
            state=vm.get("state"),
        )
        for vm in vms
    ]


__all__ = ["ALL", "NameFilter", "build_targets", "select_targets"]
