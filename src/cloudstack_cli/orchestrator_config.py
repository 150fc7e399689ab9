"""Configuration for batch job orchestration.

Sensible defaults that can be overridden via environment variables, the
config file, or command-line options (in increasing precedence).
"""

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class OrchestratorConfig:
    """Tunables of the job orchestrator."""

    # Maximum number of items submitted/polled at the same time (window size)
    concurrency: int = 10

    # Seconds between two status queries of the same job
    poll_interval: float = 2.0

    # Consecutive failed status queries tolerated before an item fails
    poll_max_retries: int = 3

    # Per-item limit in seconds from submission; None waits indefinitely
    deadline: float | None = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.poll_interval < 0:
            raise ValueError(f"poll_interval must not be negative, got {self.poll_interval}")
        if self.poll_max_retries < 0:
            raise ValueError(f"poll_max_retries must not be negative, got {self.poll_max_retries}")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError(f"deadline must be positive, got {self.deadline}")

    def override(self, **values: object) -> "OrchestratorConfig":
        """Return a copy with every non-None value in ``values`` applied."""
        updates = {key: value for key, value in values.items() if value is not None}
        return replace(self, **updates) if updates else self

    @classmethod
    def from_environment(cls) -> "OrchestratorConfig":
        """Load orchestrator configuration from environment variables.

        Environment variables (all optional):
            CLOUDSTACK_CLI_CONCURRENCY: Window size (default: 10)
            CLOUDSTACK_CLI_POLL_INTERVAL: Seconds between polls (default: 2.0)
            CLOUDSTACK_CLI_POLL_MAX_RETRIES: Failed polls tolerated (default: 3)
            CLOUDSTACK_CLI_DEADLINE: Per-item deadline in seconds (default: none)

        Returns:
            OrchestratorConfig with values from environment or defaults
        """
        deadline = os.getenv("CLOUDSTACK_CLI_DEADLINE")
        return cls(
            concurrency=int(os.getenv("CLOUDSTACK_CLI_CONCURRENCY", "10")),
            poll_interval=float(os.getenv("CLOUDSTACK_CLI_POLL_INTERVAL", "2.0")),
            poll_max_retries=int(os.getenv("CLOUDSTACK_CLI_POLL_MAX_RETRIES", "3")),
            deadline=float(deadline) if deadline else None,
        )


# Global configuration instance (lazily loaded)
_config: OrchestratorConfig | None = None


def get_orchestrator_config() -> OrchestratorConfig:
    """Get global orchestrator configuration (loaded from environment on first access)."""
    global _config
    if _config is None:
        _config = OrchestratorConfig.from_environment()
    return _config


def reset_orchestrator_config() -> None:
    """Reset global orchestrator configuration.

    Forces reload from environment on next access.
    """
    global _config
    _config = None


__all__ = ["OrchestratorConfig", "get_orchestrator_config", "reset_orchestrator_config"]
