import math

from data_models import ClassificationTree, Output, TerminalClass, Variable, VariableType
from merge_engine import MergeEngine, coalesce_intervals, ranges_overlap


def _range(class_id, lo, hi, valid=True, label=None):
    return TerminalClass(id=class_id, label=label or class_id, min=lo, max=hi, valid=valid)


def _literal(label, valid=True):
    return TerminalClass(id=label, label=label, values=(label,), valid=valid)


def _tree(*variables, output=None):
    return ClassificationTree(variables=tuple(variables), output=output)


class TestIntervals:
    def test_overlap_is_closed(self):
        assert ranges_overlap(0, 10, 10, 20)
        assert not ranges_overlap(0, 10, 10.1, 20)

    def test_coalesce(self):
        merged = coalesce_intervals([_range("b", 5, 15), _range("a", 0, 10), _range("c", 20, 30)])
        assert [(iv.min, iv.max) for iv in merged] == [(0, 15), (20, 30)]
        assert merged[0].first.id == "a"

    def test_coalesce_or_validity(self):
        merged = coalesce_intervals([_range("a", 0, 10, valid=False), _range("b", 5, 15)])
        assert merged[0].valid


class TestNumericMerge:
    def test_overlapping_classes_coalesce(self):
        existing = _tree(Variable("Speed", VariableType.RANGE, (_range("low", 0, 30), _range("high", 31, 120))))
        incoming = _tree(Variable("Speed", VariableType.RANGE, (_range("high", 31, 150),)))
        speed = MergeEngine().merge(existing, incoming).merged.get_variable("Speed")
        assert [(tc.min, tc.max) for tc in speed.terminal_classes] == [(0, 30), (31, 150)]
        assert speed.terminal_classes[0].id == "low"
        assert speed.terminal_classes[1].id == "Speed-merged-1-31-150"
        assert speed.terminal_classes[1].label == "31-150"

    def test_valid_and_invalid_stay_apart(self):
        existing = _tree(Variable("T", VariableType.FLOAT, (
            _range("ok", 0, 100),
            _range("neg", -math.inf, -0.1, valid=False),
        )))
        incoming = _tree(Variable("T", VariableType.FLOAT, (_range("hot", 100.1, math.inf, valid=False),)))
        classes = MergeEngine().merge(existing, incoming).merged.get_variable("T").terminal_classes
        assert [tc.id for tc in classes] == ["neg", "ok", "hot"]
        assert [tc.valid for tc in classes] == [False, True, False]

    def test_age_invalid_bucket_absorbs_narrower_class(self):
        existing_classes = (
            _range("child", 0, 17, valid=False),
            _range("adult", 18, 65),
            _range("senior", 66, 120),
            _range("too old", 120.1, math.inf, valid=False),
        )
        existing = _tree(Variable("Age", VariableType.RANGE, existing_classes))
        incoming = _tree(Variable("Age", VariableType.RANGE, existing_classes + (_range("toddler", 0, 12, valid=False),)))
        result = MergeEngine().merge(existing, incoming)
        classes = result.merged.get_variable("Age").terminal_classes
        invalid = [(tc.min, tc.max) for tc in classes if not tc.valid]
        assert invalid == [(0, 17), (120.1, math.inf)]
        assert [(tc.id, tc.min, tc.max) for tc in classes if tc.valid] == [("adult", 18, 65), ("senior", 66, 120)]
        assert classes[0].id == "child"
        assert result.warnings == ()

    def test_literal_classes_are_appended(self):
        existing = _tree(Variable("N", VariableType.RANGE, (_range("a", 0, 1), _literal("unknown"))))
        incoming = _tree(Variable("N", VariableType.RANGE, (_literal("unknown"), _literal("blank"))))
        labels = [tc.label for tc in MergeEngine().merge(existing, incoming).merged.get_variable("N").terminal_classes]
        assert labels == ["a", "unknown", "blank"]


class TestDiscreteMerge:
    def test_union_by_label(self):
        existing = _tree(Variable("Mode", VariableType.ENUM, (_literal("ON"), _literal("OFF"))))
        incoming = _tree(Variable("Mode", VariableType.ENUM, (_literal("ON"), _literal("STANDBY"))))
        mode = MergeEngine().merge(existing, incoming).merged.get_variable("Mode")
        assert [tc.label for tc in mode.terminal_classes] == ["ON", "OFF", "STANDBY"]

    def test_invalid_buckets_collapse(self):
        existing = _tree(Variable("Fan", VariableType.ENUM, (_literal("LOW"), _literal("bad", valid=False))))
        incoming = _tree(Variable("Fan", VariableType.ENUM, (_literal("worse", valid=False),)))
        fan = MergeEngine().merge(existing, incoming).merged.get_variable("Fan")
        assert [tc.label for tc in fan.terminal_classes] == ["LOW", "Fan=other"]
        assert fan.terminal_classes[-1].id == "Fan-enum-invalid"

    def test_single_invalid_bucket_is_kept(self):
        existing = _tree(Variable("Fan", VariableType.ENUM, (_literal("LOW"), _literal("bad", valid=False))))
        fan = MergeEngine().merge(existing, existing).merged.get_variable("Fan")
        assert [tc.label for tc in fan.terminal_classes] == ["LOW", "bad"]


class TestTreeMerge:
    def test_new_variables_appended(self, tree_v1, tree_v2):
        merged = MergeEngine().merge(tree_v1, tree_v2).merged
        assert merged.variable_names() == ["Speed", "Mode", "Distance"]

    def test_variables_only_in_existing_survive(self, tree_v1):
        incoming = _tree(Variable("Other", VariableType.ENUM, (_literal("x"),)))
        merged = MergeEngine().merge(tree_v1, incoming).merged
        assert merged.variable_names() == ["Speed", "Mode", "Other"]

    def test_conflicts_reported(self):
        existing = _tree(Variable("Mode", VariableType.ENUM, (_literal("OFF"),)))
        incoming = _tree(Variable("Mode", VariableType.ENUM, (_literal("OFF", valid=False),)))
        result = MergeEngine().merge(existing, incoming)
        assert len(result.warnings) == 1
        conflict = result.warnings[0]
        assert (conflict.variable, conflict.label) == ("Mode", "OFF")
        assert conflict.existing_valid and not conflict.incoming_valid

    def test_merge_with_itself_is_stable(self, tree_v1):
        result = MergeEngine().merge(tree_v1, tree_v1)
        assert result.warnings == ()
        for variable in tree_v1.variables:
            merged = result.merged.get_variable(variable.name)
            assert sorted(tc.label for tc in merged.terminal_classes) == sorted(tc.label for tc in variable.terminal_classes)

    def test_inputs_are_untouched(self, tree_v1, tree_v2):
        before = (tree_v1.to_dict(), tree_v2.to_dict())
        MergeEngine().merge(tree_v1, tree_v2)
        assert (tree_v1.to_dict(), tree_v2.to_dict()) == before

    def test_no_existing_tree(self, tree_v2):
        result = MergeEngine().merge(None, tree_v2)
        assert result.merged is tree_v2
        assert result.warnings == ()

    def test_output_union(self):
        existing = _tree(output=Output("action", (_literal("stop"),)))
        incoming = _tree(output=Output("action", (_literal("stop"), _literal("go"))))
        output = MergeEngine().merge(existing, incoming).merged.output
        assert [tc.label for tc in output.terminal_classes] == ["stop", "go"]
