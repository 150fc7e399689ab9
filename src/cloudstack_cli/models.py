"""Data types shared by the resolver, the orchestrator and the command layer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# A catalog entry as returned by the control plane: field name -> value.
Entity = dict[str, Any]


class JobStatus(Enum):
    """Remote status of an asynchronous job."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PENDING


@dataclass
class JobStatusReport:
    """One answer of the gateway's poll_job call."""

    status: JobStatus
    result: Entity | None = None
    progress: int | None = None
    error_text: str | None = None


@dataclass
class JobHandle:
    """In-flight remote job paired with the local descriptor of its target."""

    job_id: str
    target_id: str | None
    label: str
    status: JobStatus = JobStatus.PENDING


class ItemState(Enum):
    """Per-item state of a batch run."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemState.SUCCEEDED, ItemState.FAILED, ItemState.SKIPPED)


class FailureReason:
    """Reason tags for Failed outcomes produced by the orchestrator."""

    SUBMIT_ERROR = "SubmitError"
    POLL_ERROR = "PollError"
    TIMEOUT = "Timeout"
    JOB_FAILED = "JobFailed"


@dataclass
class TargetDescriptor:
    """One item of a batch: the object an action is applied to.

    ``state`` is the target's current state as last listed (e.g. ``Running``);
    for create actions ``exists`` marks a target that is already present.
    """

    label: str
    target_id: str | None = None
    state: str | None = None
    exists: bool = False
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class JobOutcome:
    """Terminal state of one batch item."""

    label: str
    state: ItemState
    reason: str | None = None
    message: str = ""
    error: Exception | None = None
    target_id: str | None = None
    job_id: str | None = None
    result: Entity | None = None
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is ItemState.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state is ItemState.FAILED

    @property
    def skipped(self) -> bool:
        return self.state is ItemState.SKIPPED

    def __repr__(self) -> str:
        text = f"[{self.state.value.upper()}] {self.label}"
        if self.reason:
            text += f" ({self.reason})"
        if self.message:
            text += f": {self.message}"
        return text


class BatchResult:
    """Ordered outcomes of a batch, one per requested item."""

    def __init__(self, outcomes: list[JobOutcome], aborted: bool = False):
        self.outcomes = outcomes
        self.aborted = aborted

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self):
        return iter(self.outcomes)

    @property
    def total(self) -> int:
        """Total number of outcomes."""
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)

    def get_failures(self) -> list[JobOutcome]:
        """Get only failed outcomes."""
        return [o for o in self.outcomes if o.failed]

    def format_summary(self) -> str:
        """Format summary of outcomes."""
        if self.aborted:
            return "Aborted: no operations were submitted"
        return (
            f"Total: {self.total}, Succeeded: {self.succeeded}, "
            f"Skipped: {self.skipped}, Failed: {self.failed}"
        )


__all__ = [
    "BatchResult",
    "Entity",
    "FailureReason",
    "ItemState",
    "JobHandle",
    "JobOutcome",
    "JobStatus",
    "JobStatusReport",
    "TargetDescriptor",
]
