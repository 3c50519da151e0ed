import math

import pytest

from data_models import Output, TerminalClass, Variable, VariableType
from partition_builder import PartitionBuilder, round_sample, sample_value


class TestSampling:
    def test_integer_midpoint_rounds_half_up(self):
        tc = TerminalClass(id="a", label="a", min=30.1, max=120)
        assert sample_value(tc, VariableType.RANGE) == 75

    def test_float_midpoint_keeps_precision(self):
        tc = TerminalClass(id="a", label="a", min=50.1, max=200, precision=1)
        assert sample_value(tc, VariableType.FLOAT) == pytest.approx(125.05)

    def test_half_open_intervals(self):
        below = TerminalClass(id="a", label="a", min=-math.inf, max=0)
        above = TerminalClass(id="b", label="b", min=120.1, max=math.inf)
        assert sample_value(below, VariableType.RANGE) == -1
        assert sample_value(above, VariableType.FLOAT) == pytest.approx(120.2)

    def test_unbounded_percentage(self):
        tc = TerminalClass(id="a", label="a")
        assert sample_value(tc, VariableType.PERCENTAGE) == 50

    def test_booleans(self):
        assert sample_value(TerminalClass(id="a", label="x", values=(False,)), VariableType.BOOLEAN) is False
        assert sample_value(TerminalClass(id="b", label="Enabled"), VariableType.BOOLEAN) is True

    def test_discrete(self):
        assert sample_value(TerminalClass(id="a", label="on", values=("CC_ON",)), VariableType.ENUM) == "CC_ON"
        assert sample_value(TerminalClass(id="b", label="other"), VariableType.ENUM) == "other"

    def test_round_sample(self):
        assert round_sample(2.5, VariableType.RANGE) == 3
        assert round_sample(-2.5, VariableType.RANGE) == -2
        assert round_sample(1.23456, VariableType.FLOAT, 3) == 1.235


class TestBuild:
    def test_one_item_per_class(self, tree_v1):
        partitions = PartitionBuilder().build(tree_v1.variables)
        speed, mode = partitions
        assert [item.sample for item in speed.items] == [15, 75, -1]
        assert [item.valid for item in speed.items] == [True, True, False]
        assert [item.sample for item in mode.items] == ["CC_ON", "CC_OFF"]
        assert speed.items[0].id == "Speed-low-0"

    def test_empty_variable_skipped(self):
        partitions = PartitionBuilder().build([Variable(name="Empty")])
        assert partitions == []


class TestBuildDisplay:
    def test_numeric_buckets(self, tree_v1):
        display = PartitionBuilder().build_display(tree_v1.variables, tree_v1.output)
        speed = display[0]
        assert [item.label for item in speed.items] == ["(-∞, 0)", "(0, 30)", "(30.1, 120)", "(120, ∞)"]
        overflow = speed.items[-1]
        assert overflow.id == "overflow"
        assert overflow.sample == 121
        assert not overflow.valid

    def test_underflow_when_lower_bound_is_finite(self):
        variable = Variable(name="Age", type=VariableType.RANGE, terminal_classes=(
            TerminalClass(id="a", label="a", min=0, max=17),
            TerminalClass(id="b", label="b", min=18, max=120),
        ))
        items = PartitionBuilder().build_display([variable])[0].items
        assert items[0].label == "(-∞, 0)"
        assert items[0].sample == -1
        assert [item.id for item in items] == ["underflow", "a", "b", "overflow"]

    def test_point_class_label(self):
        variable = Variable(name="N", type=VariableType.RANGE, terminal_classes=(
            TerminalClass(id="z", label="zero", min=0, max=0),
        ))
        items = PartitionBuilder().build_display([variable])[0].items
        assert items[1].label == "0"

    def test_discrete_and_output_get_none_bucket(self, tree_v1):
        display = PartitionBuilder().build_display(tree_v1.variables, tree_v1.output)
        mode, output = display[1], display[2]
        assert mode.items[-1].sample is None
        assert output.name == "controllerAction"
        assert [item.label for item in output.items] == ["accelerate", "brake", "None"]

    def test_numeric_output_collapses(self):
        output = Output(name="level", terminal_classes=(
            TerminalClass(id="lo", label="lo", values=("1",)),
            TerminalClass(id="hi", label="hi", values=("5",)),
        ))
        items = PartitionBuilder().build_display([], output)[0].items
        assert items[0].id == "lo-hi"
        assert items[0].label == "(1, 5)"
        assert len(items) == 2

    def test_single_item_partitions_dropped(self):
        variable = Variable(name="Flag", type=VariableType.ENUM)
        assert PartitionBuilder().build_display([variable]) == []

    def test_unbounded_class_label(self):
        variable = Variable(name="T", type=VariableType.FLOAT, terminal_classes=(
            TerminalClass(id="any", label="any", min=-math.inf, max=math.inf, valid=False),
            TerminalClass(id="room", label="room", min=18, max=24),
        ))
        items = PartitionBuilder().build_display([variable])[0].items
        assert [item.label for item in items] == ["(-∞, ∞)", "(18, 24)"]
