import pytest

from data_models import ChangeStatus, ClassificationTree, SourceVersion, TerminalClass, Variable
from diff_engine import (
    RANGE_CHANGED,
    VALIDITY_CHANGED,
    DiffEngine,
    compare_terminal_classes,
)
from errors import DiffComputationError


class TestCompareTerminalClasses:
    def test_buckets(self):
        old = (
            TerminalClass(id="a", label="a", min=0, max=10),
            TerminalClass(id="b", label="b", min=11, max=20),
            TerminalClass(id="c", label="c", values=("c",)),
        )
        new = (
            TerminalClass(id="a", label="a", min=0, max=10),
            TerminalClass(id="b", label="b", min=11, max=30),
            TerminalClass(id="d", label="d", values=("d",)),
        )
        diff = compare_terminal_classes(old, new)
        assert [c.name for c in diff.added] == ["d"]
        assert [c.name for c in diff.removed] == ["c"]
        assert [c.name for c in diff.modified] == ["b"]
        assert [c.name for c in diff.unchanged] == ["a"]
        assert diff.modified[0].change_type == RANGE_CHANGED

    def test_validity_change(self):
        old = (TerminalClass(id="a", label="a", min=0, max=10),)
        new = (TerminalClass(id="a", label="a", min=0, max=10, valid=False),)
        diff = compare_terminal_classes(old, new)
        assert diff.modified[0].change_type == VALIDITY_CHANGED

    def test_range_change_takes_precedence(self):
        old = (TerminalClass(id="a", label="a", min=0, max=10),)
        new = (TerminalClass(id="a", label="a", min=0, max=12, valid=False),)
        assert compare_terminal_classes(old, new).modified[0].change_type == RANGE_CHANGED


class TestDiffEngine:
    def test_summary(self, tree_v1, tree_v2):
        report = DiffEngine().compare(tree_v1, tree_v2)
        assert report.summary == {
            "variablesAdded": 1,
            "variablesRemoved": 0,
            "variablesModified": 2,
            "variablesUnchanged": 0,
            "outputChanged": False,
            "terminalClassesAdded": 3,
            "terminalClassesRemoved": 1,
            "terminalClassesModified": 1,
        }
        assert report.variable_diff.status_of("Distance") is ChangeStatus.ADDED
        assert report.variable_diff.status_of("Speed") is ChangeStatus.MODIFIED
        assert report.variable_diff.status_of("Nope") is None

    def test_impact_rules(self, tree_v1, tree_v2):
        impact = DiffEngine().compare(tree_v1, tree_v2).impact
        rules = {(r.type, r.variable, r.terminal_class) for r in impact.rules}
        assert rules == {
            ("variable_added", "Distance", None),
            ("terminal_class_modified", "Speed", "high"),
            ("terminal_class_added", "Mode", "CC_STANDBY"),
            ("terminal_class_removed", "Mode", "CC_OFF"),
        }
        actions = {r.type: r.action for r in impact.rules}
        assert actions["variable_added"] == "generate_test_cases"
        assert actions["terminal_class_removed"] == "mark_obsolete"
        assert actions["terminal_class_modified"] == "regenerate_test_cases"
        assert impact.test_cases_to_generate[0].terminal_classes == ("near", "far")
        assert impact.test_cases_to_regenerate[0].change_type == RANGE_CHANGED

    def test_removed_variable(self, tree_v1):
        smaller = ClassificationTree(use_case=tree_v1.use_case, variables=tree_v1.variables[:1], output=tree_v1.output)
        report = DiffEngine().compare(tree_v1, smaller)
        assert [c.name for c in report.variable_diff.removed] == ["Mode"]
        assert report.impact.rules[0].type == "variable_removed"
        assert report.impact.rules[0].action == "mark_obsolete"

    def test_output_change(self, tree_v1):
        changed = ClassificationTree(use_case=tree_v1.use_case, variables=tree_v1.variables, output=None)
        report = DiffEngine().compare(tree_v1, changed)
        assert report.output_diff.status is ChangeStatus.REMOVED
        assert [r.type for r in report.impact.rules] == ["output_changed"]
        assert report.impact.rules[0].action == "review_expected_outputs"

    def test_identical_trees(self, tree_v1):
        report = DiffEngine().compare(tree_v1, tree_v1)
        assert report.impact.rules == []
        assert report.summary["variablesUnchanged"] == 2

    def test_first_version(self, tree_v1):
        report = DiffEngine().first_version(tree_v1)
        assert report.summary["variablesAdded"] == 2
        assert report.summary["terminalClassesAdded"] == 5
        assert all(v.status is ChangeStatus.ADDED for v in report.merged_tree.variables)

    def test_merged_tree_annotations(self, tree_v1, tree_v2):
        merged = DiffEngine().compare(tree_v1, tree_v2).merged_tree
        assert [v.name for v in merged.variables] == ["Speed", "Mode", "Distance"]
        status = merged.node_status_map
        assert status["Speed.low"] is ChangeStatus.UNCHANGED
        assert status["Speed.high"] is ChangeStatus.MODIFIED
        assert status["Mode.CC_OFF"] is ChangeStatus.REMOVED
        assert status["Distance.near"] is ChangeStatus.ADDED

        mode = next(v for v in merged.variables if v.name == "Mode")
        removed = mode.get_class("CC_OFF")
        assert removed.source_version is SourceVersion.OLD
        high = next(v for v in merged.variables if v.name == "Speed").get_class("high")
        assert high.previous.max == 120
        assert high.max == 150

    def test_serializes(self, tree_v1, tree_v2):
        data = DiffEngine().compare(tree_v1, tree_v2).to_dict()
        assert data["mergedTree"]["nodeStatusMap"]["Mode.CC_STANDBY"] == "added"
        assert data["variableDiff"]["added"][0]["name"] == "Distance"

    def test_unusable_tree(self, tree_v1):
        broken = ClassificationTree(variables=(Variable(name="X", terminal_classes=None),))
        with pytest.raises(DiffComputationError):
            DiffEngine().compare(tree_v1, broken)

    @pytest.mark.parametrize("old_fixture, new_fixture", [
        ("tree_v1", "tree_v2"),
        ("tree_v2", "tree_v1"),
        ("tree_v1", "tree_v1"),
    ])
    def test_every_variable_lands_in_one_bucket(self, request, old_fixture, new_fixture):
        old, new = request.getfixturevalue(old_fixture), request.getfixturevalue(new_fixture)
        diff = DiffEngine().compare(old, new).variable_diff
        buckets = [diff.added, diff.removed, diff.modified, diff.unchanged]
        names = [c.name for bucket in buckets for c in bucket]
        assert sorted(names) == sorted(set(old.variable_names()) | set(new.variable_names()))
