"""Job orchestration for batches of asynchronous VM operations.

Items are processed in windows of ``concurrency`` items. Within a window
every item is submitted and polled on its own worker thread; the next
window starts once every item of the current one is terminal. Per item:

    Pending -> Submitted -> Polling -> Succeeded | Failed
    Pending -> Skipped                (target already in the requested state)

Failures are isolated: a failed submission, an exhausted poll retry budget
or an expired deadline fails that item only. Outcomes are stored by input
position, so the returned BatchResult always lines up with the request.
"""

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cloudstack_cli.api_client import CloudStackGateway
from cloudstack_cli.errors import (
    PollTimeoutError,
    RemoteAPIError,
    TransportError,
    UnsupportedActionError,
)
from cloudstack_cli.models import (
    BatchResult,
    FailureReason,
    ItemState,
    JobHandle,
    JobOutcome,
    JobStatus,
    TargetDescriptor,
)
from cloudstack_cli.orchestrator_config import OrchestratorConfig, get_orchestrator_config
from cloudstack_cli.retry_handler import _safe_error_message

logger = logging.getLogger(__name__)


class VMAction(Enum):
    """Supported batch actions."""

    CREATE = "create"
    START = "start"
    STOP = "stop"
    REBOOT = "reboot"
    DESTROY = "destroy"

    @classmethod
    def parse(cls, value: "str | VMAction") -> "VMAction":
        """Parse an action name (case-insensitive).

        Raises:
            UnsupportedActionError: If the name is not a supported action
        """
        if isinstance(value, VMAction):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(a.value for a in cls)
            raise UnsupportedActionError(
                f"Command '{value}' not supported. Supported: {supported}"
            ) from None

    @property
    def spec(self) -> "ActionSpec":
        return ACTION_SPECS[self]


def _by_id(target: TargetDescriptor, common: Mapping[str, Any]) -> dict[str, Any]:
    return {**common, **target.params, "id": target.target_id}


def _deployment(target: TargetDescriptor, common: Mapping[str, Any]) -> dict[str, Any]:
    return {**common, **target.params}


@dataclass(frozen=True)
class ActionSpec:
    """How one action maps onto the control plane."""

    command: str
    verb: str
    skip_states: frozenset[str]
    build_params: Callable[[TargetDescriptor, Mapping[str, Any]], dict[str, Any]]
    creates: bool = False

    def skip_reason(self, target: TargetDescriptor) -> str | None:
        """Return why ``target`` needs no submission, or None."""
        if self.creates:
            if target.exists:
                return f"already exists ({target.state or 'unknown state'})"
            return None
        if target.state and target.state.lower() in self.skip_states:
            return f"already {target.state}"
        return None


ACTION_SPECS: dict[VMAction, ActionSpec] = {
    VMAction.CREATE: ActionSpec(
        "deployVirtualMachine", "Create", frozenset(), _deployment, creates=True
    ),
    VMAction.START: ActionSpec("startVirtualMachine", "Start", frozenset({"running"}), _by_id),
    VMAction.STOP: ActionSpec("stopVirtualMachine", "Stop", frozenset({"stopped"}), _by_id),
    VMAction.REBOOT: ActionSpec("rebootVirtualMachine", "Reboot", frozenset(), _by_id),
    VMAction.DESTROY: ActionSpec(
        "destroyVirtualMachine", "Destroy", frozenset({"destroyed", "expunging"}), _by_id
    ),
}


class JobOrchestrator:
    """Drive batches of asynchronous jobs to terminal outcomes."""

    def __init__(
        self,
        gateway: CloudStackGateway,
        config: OrchestratorConfig | None = None,
        progress_callback: Callable[[str], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize orchestrator.

        Args:
            gateway: Remote API gateway, shared by all worker threads
            config: Orchestration tunables (default: from environment)
            progress_callback: Receives informational progress lines
            sleep: Inter-poll delay function
            clock: Monotonic clock used for durations and deadlines
        """
        self.gateway = gateway
        self.config = config or get_orchestrator_config()
        self.progress_callback = progress_callback
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._states: list[ItemState] = []
        self.max_in_flight = 0

    def run_batch(
        self,
        items: Sequence[TargetDescriptor],
        action: "VMAction | str",
        concurrency: int | None = None,
        deadline: float | None = None,
        confirm: Callable[[], bool] | None = None,
        common_params: Mapping[str, Any] | None = None,
    ) -> BatchResult:
        """Run ``action`` on every item and wait for all outcomes.

        Args:
            items: Targets in the order outcomes are reported
            action: VMAction or its name
            concurrency: Window size (default: configured concurrency)
            deadline: Per-item seconds from submission (default: configured deadline)
            confirm: Asked once before any submission; False aborts the batch
            common_params: Parameters shared by every submission

        Returns:
            BatchResult with one outcome per item, or an empty aborted result

        Raises:
            UnsupportedActionError: If ``action`` is not a supported action
        """
        spec = VMAction.parse(action).spec
        config = self.config.override(concurrency=concurrency, deadline=deadline)
        common = dict(common_params or {})

        if confirm is not None and not confirm():
            logger.info(f"{spec.verb} batch aborted before submission")
            return BatchResult([], aborted=True)

        slots: list[JobOutcome | None] = [None] * len(items)
        with self._lock:
            self._states = [ItemState.PENDING] * len(items)
            self.max_in_flight = 0

        window_size = config.concurrency
        windows = [
            range(start, min(start + window_size, len(items)))
            for start in range(0, len(items), window_size)
        ]
        for number, window in enumerate(windows, 1):
            logger.info(f"{spec.verb}: window {number}/{len(windows)} ({len(window)} items)")
            with ThreadPoolExecutor(max_workers=len(window)) as executor:
                futures = [
                    executor.submit(
                        self._run_item, slots, index, items[index], spec, config, common
                    )
                    for index in window
                ]
                for future in as_completed(futures):
                    future.result()

        outcomes = [outcome for outcome in slots if outcome is not None]
        if len(outcomes) != len(items):
            raise RuntimeError(f"{len(items) - len(outcomes)} batch items have no outcome")
        return BatchResult(outcomes)

    def in_flight(self) -> int:
        """Number of items currently Submitted or Polling."""
        with self._lock:
            return sum(1 for s in self._states if s in (ItemState.SUBMITTED, ItemState.POLLING))

    # ------------------------------------------------------------------
    # Per item
    # ------------------------------------------------------------------

    def _set_state(self, index: int, state: ItemState) -> None:
        with self._lock:
            self._states[index] = state
            in_flight = sum(
                1 for s in self._states if s in (ItemState.SUBMITTED, ItemState.POLLING)
            )
            self.max_in_flight = max(self.max_in_flight, in_flight)

    def _record(self, slots: list[JobOutcome | None], index: int, outcome: JobOutcome) -> None:
        with self._lock:
            slots[index] = outcome
            self._states[index] = outcome.state
        symbol = {ItemState.SUCCEEDED: "✓", ItemState.SKIPPED: "-"}.get(outcome.state, "✗")
        detail = f": {outcome.message}" if outcome.message else ""
        self._notify(f"{symbol} {outcome.label}{detail}")
        if outcome.failed:
            logger.error(f"{outcome.label} failed ({outcome.reason}): {outcome.message}")
        else:
            logger.info(f"{outcome.label}: {outcome.state.value}")

    def _notify(self, message: str) -> None:
        if not self.progress_callback:
            return
        try:
            self.progress_callback(message)
        except Exception as e:
            logger.warning(f"Progress callback failed: {_safe_error_message(e)}")

    def _run_item(
        self,
        slots: list[JobOutcome | None],
        index: int,
        target: TargetDescriptor,
        spec: ActionSpec,
        config: OrchestratorConfig,
        common: Mapping[str, Any],
    ) -> None:
        """Take one item from Pending to a terminal state; never raises."""
        start_time = self._clock()
        try:
            outcome = self._process_item(index, target, spec, config, common)
        except Exception as e:
            logger.exception(f"{target.label}: unexpected error")
            with self._lock:
                submitted = self._states[index] in (ItemState.SUBMITTED, ItemState.POLLING)
            outcome = JobOutcome(
                label=target.label,
                state=ItemState.FAILED,
                reason=FailureReason.POLL_ERROR if submitted else FailureReason.SUBMIT_ERROR,
                message=_safe_error_message(e),
                error=e,
                target_id=target.target_id,
            )
        if not outcome.skipped:
            outcome.duration = self._clock() - start_time
        self._record(slots, index, outcome)

    def _process_item(
        self,
        index: int,
        target: TargetDescriptor,
        spec: ActionSpec,
        config: OrchestratorConfig,
        common: Mapping[str, Any],
    ) -> JobOutcome:
        reason = spec.skip_reason(target)
        if reason:
            return JobOutcome(
                label=target.label,
                state=ItemState.SKIPPED,
                reason="AlreadyInState",
                message=reason,
                target_id=target.target_id,
            )

        try:
            job_id = self.gateway.submit(spec.command, spec.build_params(target, common))
        except Exception as e:
            return JobOutcome(
                label=target.label,
                state=ItemState.FAILED,
                reason=FailureReason.SUBMIT_ERROR,
                message=_safe_error_message(e),
                error=e,
                target_id=target.target_id,
            )

        handle = JobHandle(job_id=job_id, target_id=target.target_id, label=target.label)
        self._set_state(index, ItemState.SUBMITTED)
        logger.debug(f"{handle.label}: submitted as job {handle.job_id}")
        self._set_state(index, ItemState.POLLING)

        return self._poll_to_completion(handle, config)

    def _poll_to_completion(self, handle: JobHandle, config: OrchestratorConfig) -> JobOutcome:
        submitted_at = self._clock()
        poll_failures = 0
        last_progress = None

        while True:
            try:
                report = self.gateway.poll_job(handle.job_id)
            except TransportError as e:
                poll_failures += 1
                if poll_failures > config.poll_max_retries:
                    return self._failed(handle, FailureReason.POLL_ERROR, e)
                logger.warning(
                    f"{handle.label}: status query failed "
                    f"({poll_failures}/{config.poll_max_retries}): {_safe_error_message(e)}"
                )
            except Exception as e:
                return self._failed(handle, FailureReason.POLL_ERROR, e)
            else:
                poll_failures = 0
                handle.status = report.status
                if report.status is JobStatus.SUCCEEDED:
                    return JobOutcome(
                        label=handle.label,
                        state=ItemState.SUCCEEDED,
                        target_id=handle.target_id,
                        job_id=handle.job_id,
                        result=report.result,
                    )
                if report.status is JobStatus.FAILED:
                    return self._failed(
                        handle,
                        FailureReason.JOB_FAILED,
                        RemoteAPIError(report.error_text or "job failed"),
                        result=report.result,
                    )
                if report.progress is not None and report.progress != last_progress:
                    last_progress = report.progress
                    self._notify(f"  {handle.label}: {report.progress}%")

            if config.deadline is not None and self._clock() - submitted_at >= config.deadline:
                return self._failed(
                    handle,
                    FailureReason.TIMEOUT,
                    PollTimeoutError(
                        f"still running after {config.deadline:g}s, job {handle.job_id} abandoned"
                    ),
                )
            self._sleep(config.poll_interval)

    @staticmethod
    def _failed(
        handle: JobHandle, reason: str, error: Exception, result: dict[str, Any] | None = None
    ) -> JobOutcome:
        return JobOutcome(
            label=handle.label,
            state=ItemState.FAILED,
            reason=reason,
            message=_safe_error_message(error),
            error=error,
            target_id=handle.target_id,
            job_id=handle.job_id,
            result=result,
        )


__all__ = [
    "ACTION_SPECS",
    "ActionSpec",
    "JobOrchestrator",
    "VMAction",
]
