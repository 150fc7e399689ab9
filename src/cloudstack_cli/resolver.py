"""Identifier resolution: human-readable names -> control-plane ids.

Every lookup step has the same shape::

    step(params: ResolvedParameters, options: dict) -> ResolvedParameters

A step is a no-op when its option is absent, stores the resolved id under
the canonical API field name when exactly one catalog entry matches, and
raises a ResolutionError otherwise. Steps never mutate their input, so a
pipeline is a plain fold over a tuple of steps and a failing step leaves no
partial result behind.

Public API:
    IdentifierResolver: lookup steps, ``resolve`` and ``resolve_vm_deployment``
    ResolvedParameters: immutable mapping of resolved API fields
    DependencyRule: declarative cross-field constraint
    AmbiguityPolicy: what to do with more than one exact name match
"""

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Any

from cloudstack_cli.api_client import CloudStackGateway
from cloudstack_cli.errors import (
    AmbiguousTargetError,
    DependencyViolationError,
    MissingRequiredTargetError,
    NoDefaultNetworkError,
    NotFoundError,
    ResolutionError,
)
from cloudstack_cli.models import Entity

logger = logging.getLogger(__name__)

PROJECT_ALL_TOKENS = ("ALL", "-1")
PROJECT_ALL_ID = "-1"
ISO_FILTERS = ("self", "featured", "community")
DEFAULT_ISO_HYPERVISOR = "vmware"
DEFAULT_HOST_TYPE = "routing"


class AmbiguityPolicy(Enum):
    """Policy for lookups where several catalog entries carry the same name."""

    ERROR = "error"
    FIRST = "first"


class ResolvedParameters(Mapping[str, Any]):
    """Immutable mapping from canonical API field name to resolved value."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values = dict(values or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedParameters({self._values!r})"

    def with_values(self, **updates: Any) -> "ResolvedParameters":
        """Return a copy with ``updates`` added or replaced."""
        return ResolvedParameters({**self._values, **updates})

    def without(self, *keys: str) -> "ResolvedParameters":
        """Return a copy with ``keys`` removed."""
        return ResolvedParameters({k: v for k, v in self._values.items() if k not in keys})

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


Options = Mapping[str, Any]
Step = Callable[[ResolvedParameters, Options], ResolvedParameters]


def run_pipeline(
    steps: tuple[Step, ...],
    options: Options,
    initial: ResolvedParameters | None = None,
) -> ResolvedParameters:
    """Fold ``steps`` over ``options`` starting from ``initial``."""
    start = initial if initial is not None else ResolvedParameters()
    return reduce(lambda params, step: step(params, options), steps, start)


@dataclass(frozen=True)
class DependencyRule:
    """Cross-field constraint checked after all independent lookups.

    Kinds:
        requires:  if option ``fields[0]`` is set, param ``fields[1]`` must be resolved
        exclusive: at most one of the options in ``fields`` may be set
        one_of:    at least one of the params in ``fields`` must be non-empty
    """

    kind: str
    fields: tuple[str, ...]
    message: str
    error: type[ResolutionError] = DependencyViolationError

    @classmethod
    def requires(cls, option: str, param: str, message: str) -> "DependencyRule":
        return cls("requires", (option, param), message)

    @classmethod
    def exclusive(cls, *options: str) -> "DependencyRule":
        return cls("exclusive", options, f"Options {' and '.join(options)} are mutually exclusive.")

    @classmethod
    def one_of(
        cls, *params: str, message: str, error: type[ResolutionError] = MissingRequiredTargetError
    ) -> "DependencyRule":
        return cls("one_of", params, message, error)

    def check(self, options: Options, params: ResolvedParameters) -> None:
        """Raise ``self.error`` when the rule does not hold."""
        if self.kind == "requires":
            option, param = self.fields
            if options.get(option) and not params.get(param):
                raise self.error(self.message, field=param, value=options.get(option))
        elif self.kind == "exclusive":
            present = [name for name in self.fields if options.get(name)]
            if len(present) > 1:
                raise self.error(
                    self.message, field=present[0], value={k: options[k] for k in present}
                )
        elif self.kind == "one_of":
            if not any(params.get(name) for name in self.fields):
                raise self.error(self.message, field="/".join(self.fields))
        else:
            raise ValueError(f"Unknown dependency rule kind: {self.kind}")


def check_rules(
    rules: tuple[DependencyRule, ...], options: Options, params: ResolvedParameters
) -> None:
    for rule in rules:
        rule.check(options, params)


GENERIC_RULES = (DependencyRule.exclusive("template", "iso"),)

VM_DEPLOYMENT_RULES = (
    DependencyRule.exclusive("template", "iso"),
    DependencyRule.requires(
        "iso", "disk_offering_id", "A disk offering is required when using an iso."
    ),
    DependencyRule.one_of("template_id", "iso_id", message="Template or ISO is required."),
)


def _name_option(options: Options, key: str) -> str | None:
    """Return the trimmed name given for ``key``, or None when absent or empty."""
    value = options.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ResolutionError(f"Option '{key}' must be a name, got {value!r}.", key, value)
    value = value.strip()
    return value or None


def _name_list(options: Options, key: str) -> list[str]:
    """Return the names given for ``key`` as a list or a comma-separated string."""
    value = options.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ResolutionError(f"Option '{key}' must be a list of names, got {value!r}.", key, value)
    return [name.strip() for name in value if name.strip()]


def _scope(params: ResolvedParameters, *keys: str) -> dict[str, Any]:
    return {key: params[key] for key in keys if params.get(key)}


class IdentifierResolver:
    """Resolve names to ids against the control-plane catalog."""

    def __init__(
        self, gateway: CloudStackGateway, ambiguity: AmbiguityPolicy = AmbiguityPolicy.ERROR
    ):
        self.gateway = gateway
        self.ambiguity = ambiguity

    # ------------------------------------------------------------------
    # Lookup primitives
    # ------------------------------------------------------------------

    def pick(self, kind: str, name: str, candidates: list[Entity]) -> Entity:
        """Select the single candidate named exactly ``name``.

        Raises:
            NotFoundError: No candidate carries the name
            AmbiguousTargetError: Several do and the policy is ERROR
        """
        matches = [entity for entity in candidates if entity.get("name") == name]
        if not matches:
            raise NotFoundError(kind, name)
        if len(matches) > 1:
            if self.ambiguity is AmbiguityPolicy.ERROR:
                raise AmbiguousTargetError(kind, name, [str(m.get("id")) for m in matches])
            logger.warning(f"{kind} '{name}' matches {len(matches)} entries, using the first")
        return matches[0]

    def lookup(
        self, kind: str, entity_type: str, name: str, filters: dict[str, Any] | None = None
    ) -> Entity:
        """Query the catalog by name and return the single exact match."""
        candidates = self.gateway.list(entity_type, {"name": name, **(filters or {})})
        entity = self.pick(kind, name, candidates)
        logger.debug(f"Resolved {kind} '{name}' -> {entity.get('id')}")
        return entity

    def find(
        self, kind: str, entity_type: str, name: str, filters: dict[str, Any] | None = None
    ) -> Entity | None:
        """Like lookup, but return None instead of raising NotFoundError."""
        try:
            return self.lookup(kind, entity_type, name, filters)
        except NotFoundError:
            return None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def resolve_zone(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "zone")
        if not name:
            return params
        zone = self.lookup("zone", "zone", name)
        return params.with_values(zone_id=zone["id"])

    def resolve_domain(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "domain")
        if not name:
            return params
        domain = self.lookup("domain", "domain", name, {"listall": True})
        return params.with_values(domain_id=domain["id"])

    def resolve_project(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "project")
        if not name:
            return params
        if name in PROJECT_ALL_TOKENS:
            return params.with_values(project_id=PROJECT_ALL_ID)
        project = self.lookup("project", "project", name, {"listall": True})
        return params.with_values(project_id=project["id"])

    def resolve_account(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "account")
        if not name:
            return params
        account = self.lookup(
            "account", "account", name, {"listall": True, **_scope(params, "domain_id")}
        )
        updates = {"account": account["name"], "account_id": account["id"]}
        if account.get("domainid"):
            updates["domain_id"] = account["domainid"]
        return params.with_values(**updates)

    def resolve_template(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "template")
        if not name:
            return params
        template = self.lookup(
            "template",
            "template",
            name,
            {"template_filter": "executable", **_scope(params, "project_id", "zone_id")},
        )
        return params.with_values(template_id=template["id"])

    def resolve_iso(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        """Look the iso up with each iso filter in turn; the first hit wins."""
        name = _name_option(options, "iso")
        if not name:
            return params
        for iso_filter in ISO_FILTERS:
            iso = self.find(
                "iso", "iso", name, {"isofilter": iso_filter, **_scope(params, "project_id")}
            )
            if iso:
                return params.with_values(iso_id=iso["id"])
        raise NotFoundError("iso", name)

    def resolve_compute_offering(
        self, params: ResolvedParameters, options: Options
    ) -> ResolvedParameters:
        name = _name_option(options, "offering")
        if not name:
            return params
        offering = self.lookup("compute offering", "service_offering", name)
        return params.with_values(service_offering_id=offering["id"])

    def require_compute_offering(
        self, params: ResolvedParameters, options: Options
    ) -> ResolvedParameters:
        if not _name_option(options, "offering"):
            raise MissingRequiredTargetError(
                "A compute offering is required.", field="offering", value=options.get("offering")
            )
        return self.resolve_compute_offering(params, options)

    def resolve_disk_offering(
        self, params: ResolvedParameters, options: Options
    ) -> ResolvedParameters:
        name = _name_option(options, "disk_offering")
        if not name:
            return params
        offering = self.lookup("disk offering", "disk_offering", name)
        return params.with_values(disk_offering_id=offering["id"])

    def resolve_networks(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        """Resolve named networks in the zone/project; fall back to a default.

        Without named networks the first network of a listing that is scoped
        to the project only (not the zone) is used.
        """
        names = _name_list(options, "networks")
        network_ids: list[str] = []
        if names:
            available = self.gateway.list("network", _scope(params, "zone_id", "project_id"))
            network_ids = [self.pick("network", name, available)["id"] for name in names]

        if not network_ids:
            defaults = self.gateway.list("network", _scope(params, "project_id"))
            if not defaults:
                raise NoDefaultNetworkError(params.get("project_id"))
            logger.debug(f"No network named, using default network {defaults[0].get('name')}")
            network_ids = [defaults[0]["id"]]

        return params.with_values(network_ids=network_ids)

    def resolve_ip_network_list(
        self, params: ResolvedParameters, options: Options
    ) -> ResolvedParameters:
        """Resolve per-network IP assignments.

        Each item is a mapping with a ``name`` and address fields (``ip``,
        ``ipv6``, ``mac``). The result replaces ``network_ids`` and
        ``ip_address`` entirely.
        """
        items = options.get("ip_network_list") or []
        if not items:
            return params
        available = self.gateway.list("network", _scope(params, "zone_id", "project_id"))
        network_list = []
        for item in items:
            name = item.get("name")
            if not name:
                raise DependencyViolationError(
                    "Every IP network list entry needs a network name.",
                    field="ip_network_list",
                    value=item,
                )
            network = self.pick("network", name, available)
            entry = {"networkid": network["id"]}
            entry.update({k: v for k, v in item.items() if k != "name"})
            network_list.append(entry)
        return params.without("network_ids", "ip_address").with_values(
            ip_to_network_list=network_list
        )

    def resolve_host(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "host")
        if not name:
            return params
        host_type = options.get("host_type") or DEFAULT_HOST_TYPE
        host = self.lookup("host", "host", name, {"type": host_type, "listall": True})
        return params.with_values(host_id=host["id"])

    def resolve_cluster(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "cluster")
        if not name:
            return params
        cluster = self.lookup("cluster", "cluster", name)
        return params.with_values(cluster_id=cluster["id"])

    def resolve_snapshot(self, params: ResolvedParameters, options: Options) -> ResolvedParameters:
        name = _name_option(options, "snapshot")
        if not name:
            return params
        snapshot = self.lookup(
            "snapshot", "snapshot", name, {"listall": True, **_scope(params, "project_id")}
        )
        return params.with_values(snapshot_id=snapshot["id"])

    def resolve_virtual_machine(
        self, params: ResolvedParameters, options: Options
    ) -> ResolvedParameters:
        name = _name_option(options, "virtual_machine")
        if not name:
            return params
        vm = self.lookup_virtual_machine(name, params.get("project_id"))
        return params.with_values(virtual_machine_id=vm["id"])

    def lookup_virtual_machine(self, name: str, project_id: str | None = None) -> Entity:
        filters: dict[str, Any] = {"listall": True}
        if project_id:
            filters["project_id"] = project_id
        return self.lookup("virtual machine", "virtual_machine", name, filters)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def resolve(self, options: Options) -> ResolvedParameters:
        """Resolve every identifier option present in ``options``.

        Raises:
            ResolutionError: On the first failing lookup or violated rule
        """
        params = run_pipeline(
            (
                self.resolve_zone,
                self.resolve_domain,
                self.resolve_project,
                self.resolve_account,
                self.resolve_host,
                self.resolve_cluster,
                self.resolve_snapshot,
                self.resolve_virtual_machine,
                self.resolve_compute_offering,
                self.resolve_disk_offering,
                self.resolve_template,
                self.resolve_iso,
            ),
            options,
        )
        check_rules(GENERIC_RULES, options, params)
        return params

    def resolve_vm_deployment(self, options: Options) -> ResolvedParameters:
        """Resolve the parameters of a VM deployment.

        Order: zone, project, account, compute offering (required),
        template, disk offering, iso; then the dependency rules; then the
        iso template slot; then the networks. Plain settings such as the
        keypair are not identifiers; see :func:`deployment_settings`.
        """
        params = run_pipeline(
            (
                self.resolve_zone,
                self.resolve_project,
                self.resolve_account,
                self.require_compute_offering,
                self.resolve_template,
                self.resolve_disk_offering,
                self.resolve_iso,
            ),
            options,
        )
        check_rules(VM_DEPLOYMENT_RULES, options, params)

        if params.get("iso_id"):
            # An iso deploys through the template slot
            params = params.with_values(template_id=params["iso_id"])

        if options.get("ip_network_list"):
            return self.resolve_ip_network_list(params, options)
        return self.resolve_networks(params, options)


# option name -> API field; plain settings, not catalog identifiers
_SETTING_OPTIONS = {
    "keypair": "keypair",
    "group": "group",
    "hypervisor": "hypervisor",
    "display_name": "display_name",
}


def deployment_settings(options: Options, params: Mapping[str, Any]) -> dict[str, Any]:
    """Collect the plain deployment settings that accompany resolved ids.

    These values are sent as given and are kept apart from
    ResolvedParameters, which only ever holds ids found in the catalog.
    An iso deployment always names a hypervisor.

    Raises:
        ResolutionError: If a setting has the wrong type
    """
    settings: dict[str, Any] = {}
    for option, field in _SETTING_OPTIONS.items():
        value = _name_option(options, option)
        if value:
            settings[field] = value

    size = options.get("disk_size")
    if size is not None:
        if isinstance(size, bool) or not isinstance(size, int) or size < 1:
            raise ResolutionError(
                f"Option 'disk_size' must be a positive number of GB, got {size!r}.",
                "disk_size",
                size,
            )
        settings["size"] = size

    if params.get("iso_id"):
        settings.setdefault("hypervisor", DEFAULT_ISO_HYPERVISOR)
    return settings


__all__ = [
    "AmbiguityPolicy",
    "DependencyRule",
    "GENERIC_RULES",
    "IdentifierResolver",
    "ResolvedParameters",
    "VM_DEPLOYMENT_RULES",
    "check_rules",
    "deployment_settings",
    "run_pipeline",
]
