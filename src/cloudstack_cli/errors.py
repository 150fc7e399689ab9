"""Error taxonomy for cloudstack-cli.

Resolution errors are fatal to the current command and always name the
field and the value that could not be resolved. Orchestration errors are
caught per item by the orchestrator and turned into Failed outcomes.
"""


class CloudStackCliError(Exception):
    """Base class for all cloudstack-cli errors."""

    pass


class ConfigError(CloudStackCliError):
    """Raised when configuration operations fail."""

    pass


class UnsupportedActionError(CloudStackCliError):
    """Raised when a batch action name is not one of the supported actions."""

    pass


# ============================================================================
# RESOLUTION ERRORS
# ============================================================================


class ResolutionError(CloudStackCliError):
    """Base class for failures of the identifier resolver."""

    def __init__(self, message: str, field: str | None = None, value: object = None):
        super().__init__(message)
        self.field = field
        self.value = value


class NotFoundError(ResolutionError):
    """No catalog entry matches the supplied name."""

    def __init__(self, kind: str, name: str):
        super().__init__(f"{kind} '{name}' not found.", field=kind, value=name)
        self.kind = kind
        self.name = name


class AmbiguousTargetError(ResolutionError):
    """More than one catalog entry matches the supplied name."""

    def __init__(self, kind: str, name: str, ids: list[str]):
        super().__init__(
            f"{kind} '{name}' is ambiguous: {len(ids)} matches ({', '.join(ids)}).",
            field=kind,
            value=name,
        )
        self.kind = kind
        self.name = name
        self.ids = ids


class MissingRequiredTargetError(ResolutionError):
    """A required identifier could not be produced (e.g. no template and no iso)."""

    pass


class NoDefaultNetworkError(ResolutionError):
    """No network was named and no default network could be found."""

    def __init__(self, project_id: str | None = None):
        scope = f" in project {project_id}" if project_id else ""
        super().__init__(f"No default network found{scope}.", field="networks")


class DependencyViolationError(ResolutionError):
    """A cross-field rule between options is violated."""

    pass


# ============================================================================
# REMOTE / ORCHESTRATION ERRORS
# ============================================================================


class TransportError(CloudStackCliError):
    """Transient network or server-side failure; safe to retry for reads."""

    pass


class RemoteAPIError(CloudStackCliError):
    """The control plane rejected the request."""

    def __init__(self, message: str, status_code: int | None = None, error_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class PollTimeoutError(CloudStackCliError):
    """A job was still running when its deadline expired."""

    pass


__all__ = [
    "AmbiguousTargetError",
    "CloudStackCliError",
    "ConfigError",
    "DependencyViolationError",
    "MissingRequiredTargetError",
    "NoDefaultNetworkError",
    "NotFoundError",
    "PollTimeoutError",
    "RemoteAPIError",
    "ResolutionError",
    "TransportError",
    "UnsupportedActionError",
]
