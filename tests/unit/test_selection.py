"""Tests for batch target selection."""

import pytest

from cloudstack_cli.errors import ResolutionError
from cloudstack_cli.orchestrator import VMAction
from cloudstack_cli.selection import NameFilter, build_targets, select_targets
from tests.mocks.cloudstack_mock import sample_catalog


@pytest.fixture
def vms():
    return sample_catalog()["virtual_machine"]


class TestNameFilter:
    """Tests for NameFilter parsing and matching."""

    def test_parse_expressions(self):
        name_filter = NameFilter.parse(["name=web-*", " state = Running "])

        assert name_filter.criteria == {"name": "web-*", "state": "Running"}

    def test_parse_keeps_equals_in_value(self):
        assert NameFilter.parse(["tag=a=b"]).criteria == {"tag": "a=b"}

    def test_parse_rejects_missing_equals(self):
        with pytest.raises(ResolutionError, match="Expected 'field=value'"):
            NameFilter.parse(["web-1"])

    def test_parse_rejects_empty_field(self):
        with pytest.raises(ResolutionError, match="Field cannot be empty"):
            NameFilter.parse(["=web-1"])

    def test_exact_match(self):
        name_filter = NameFilter({"name": "web-1"})

        assert name_filter.matches({"name": "web-1"})
        assert not name_filter.matches({"name": "web-10"})

    def test_glob_match_is_case_sensitive(self):
        name_filter = NameFilter({"name": "web-*"})

        assert name_filter.matches({"name": "web-2"})
        assert not name_filter.matches({"name": "WEB-2"})

    def test_all_sentinel_matches_anything(self):
        name_filter = NameFilter({"state": "ALL"})

        assert name_filter.matches({"name": "x"})

    def test_missing_field_never_matches(self):
        assert not NameFilter({"state": "Running"}).matches({"name": "web-1"})


class TestSelectTargets:
    """Tests for select_targets()."""

    def test_keeps_catalog_order(self, vms):
        selected = select_targets(vms, NameFilter({"name": "*-1"}))

        assert [vm["name"] for vm in selected] == ["web-1", "db-1"]

    def test_combined_criteria(self, vms):
        selected = select_targets(vms, NameFilter({"name": "web-*", "state": "Stopped"}))

        assert [vm["name"] for vm in selected] == ["web-2"]

    def test_no_filter_selects_everything(self, vms):
        assert len(select_targets(vms, None)) == 3
        assert len(select_targets(vms, NameFilter())) == 3


class TestBuildTargets:
    """Tests for build_targets()."""

    def test_descriptors_carry_id_and_state(self, vms):
        targets = build_targets(vms[:2], VMAction.STOP)

        assert [t.label for t in targets] == [
            "Stop virtual machine web-1",
            "Stop virtual machine web-2",
        ]
        assert [t.target_id for t in targets] == ["vm-web-1-id", "vm-web-2-id"]
        assert [t.state for t in targets] == ["Running", "Stopped"]
        assert not any(t.exists for t in targets)
