"""Tests for shared data types."""

from cloudstack_cli.models import (
    BatchResult,
    FailureReason,
    ItemState,
    JobOutcome,
    JobStatus,
)


def outcome(label, state, reason=None, message=""):
    return JobOutcome(label=label, state=state, reason=reason, message=message)


class TestJobStatus:
    def test_terminal_states(self):
        assert not JobStatus.PENDING.is_terminal
        assert JobStatus.SUCCEEDED.is_terminal
        assert JobStatus.FAILED.is_terminal


class TestItemState:
    def test_terminal_states(self):
        terminal = {s for s in ItemState if s.is_terminal}

        assert terminal == {ItemState.SUCCEEDED, ItemState.FAILED, ItemState.SKIPPED}


class TestJobOutcome:
    """Tests for JobOutcome."""

    def test_repr_of_failure(self):
        failed = outcome("Stop vm-1", ItemState.FAILED, FailureReason.TIMEOUT, "gave up")

        assert repr(failed) == "[FAILED] Stop vm-1 (Timeout): gave up"

    def test_repr_of_success(self):
        assert repr(outcome("Stop vm-1", ItemState.SUCCEEDED)) == "[SUCCEEDED] Stop vm-1"

    def test_state_properties(self):
        skipped = outcome("Stop vm-1", ItemState.SKIPPED)

        assert skipped.skipped
        assert not skipped.failed
        assert not skipped.succeeded


class TestBatchResult:
    """Tests for BatchResult."""

    def test_counts_and_failures(self):
        result = BatchResult(
            [
                outcome("a", ItemState.SUCCEEDED),
                outcome("b", ItemState.FAILED, FailureReason.JOB_FAILED),
                outcome("c", ItemState.SKIPPED),
                outcome("d", ItemState.SUCCEEDED),
            ]
        )

        assert len(result) == 4
        assert (result.succeeded, result.failed, result.skipped) == (2, 1, 1)
        assert [o.label for o in result.get_failures()] == ["b"]
        assert result.format_summary() == "Total: 4, Succeeded: 2, Skipped: 1, Failed: 1"

    def test_iterates_in_order(self):
        result = BatchResult([outcome(label, ItemState.SUCCEEDED) for label in "xyz"])

        assert [o.label for o in result] == ["x", "y", "z"]

    def test_aborted_summary(self):
        result = BatchResult([], aborted=True)

        assert result.total == 0
        assert result.format_summary() == "Aborted: no operations were submitted"
