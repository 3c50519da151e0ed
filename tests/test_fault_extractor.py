import pytest

from data_models import FaultNodeType, FaultPatternType, TestCaseType
from errors import ParseError
from fault_extractor import (
    conditions_overlap,
    constraint_range,
    extract_constraints,
    parse_event_label,
    parse_fault_tree,
)
from xml_samples import MAPPING_FAULT_TREE, RANGE_FAULT_TREE, SAFETY_FAULT_TREE


class TestEventLabels:
    @pytest.mark.parametrize("label, expected", [
        ("GFR >= 90", {"GFR": 90}),
        ("GFR < 15", {"GFR": 14}),
        ("Speed > 120.5", {"Speed": 120.6}),
        ("60 <= GFR < 90", {"GFR": 75}),
        ("Mode = OFF", {"Mode": "OFF"}),
        ("Door != OPEN", {"Door": "not OPEN"}),
        ("Radar blocked", {"Radar blocked": True}),
    ])
    def test_inputs(self, label, expected):
        assert parse_event_label(label) == expected

    def test_reversed_comparison(self):
        (constraint,) = extract_constraints("90 > GFR")
        assert (constraint.variable, constraint.op, constraint.value) == ("GFR", "<", 90)

    def test_conditions_overlap_ignores_case(self):
        assert conditions_overlap(extract_constraints("gfr = 75"), extract_constraints("GFR >= 60 && GFR < 90"))
        assert not conditions_overlap(extract_constraints("GFR = 75"), extract_constraints("GFR >= 90"))

    def test_strict_bound_excludes_endpoint(self):
        below = extract_constraints("GFR >= 60 && GFR < 90")
        assert not conditions_overlap(extract_constraints("GFR = 90"), below)
        assert conditions_overlap(extract_constraints("GFR = 90"), extract_constraints("GFR >= 90"))
        assert not conditions_overlap(extract_constraints("GFR > 90"), extract_constraints("GFR <= 90"))
        assert conditions_overlap(extract_constraints("GFR >= 90"), extract_constraints("GFR <= 90"))

    def test_constraint_range_open_sides(self):
        bounds = constraint_range(extract_constraints("GFR >= 60 && GFR < 90"))
        assert (bounds.lo, bounds.hi, bounds.lo_open, bounds.hi_open) == (60, 90, False, True)
        assert constraint_range(extract_constraints("GFR > 5 && GFR < 5")).is_empty()


class TestInvalidRange:
    def test_graph(self):
        result = parse_fault_tree(RANGE_FAULT_TREE)
        assert [(n.id, n.type) for n in result.nodes] == [
            ("T1", FaultNodeType.TOP),
            ("I1", FaultNodeType.INTERMEDIATE),
            ("B1", FaultNodeType.BASIC),
            ("B2", FaultNodeType.BASIC),
        ]
        assert [(e.source, e.target) for e in result.edges] == [("T1", "I1"), ("I1", "B1"), ("I1", "B2")]

    def test_cases(self):
        cases = parse_fault_tree(RANGE_FAULT_TREE).test_cases
        assert [tc.id for tc in cases] == ["FT-001", "FT-002"]
        assert cases[0].inputs == {"Age": -1}
        assert cases[0].triggers == ("B1", "I1", "T1")
        assert cases[0].pattern is FaultPatternType.INVALID_RANGE
        assert cases[0].type is TestCaseType.FAULT
        assert cases[1].inputs == {"Age": 122}
        assert cases[1].description == "B2"


class TestInvalidMapping:
    def test_event_bound_to_mapped_stage(self):
        cases = parse_fault_tree(MAPPING_FAULT_TREE).test_cases
        by_id = {tc.triggers[0]: tc for tc in cases}
        assert by_id["E1"].triggers == ("E1", "S1", "T")
        # Structurally under "Other faults", but GFR = 75 maps to G2
        assert by_id["E3"].triggers == ("E3", "S2", "T")
        assert by_id["E3"].inputs == {"GFR": 75}
        assert all(tc.pattern is FaultPatternType.INVALID_MAPPING for tc in cases)

    def test_boundary_event_skips_strictly_lower_mapping(self):
        xml = """<pattern name="ckd" type="invalid-mapping">
  <topEvent id="T" label="Wrong CKD stage">
    <intermediateEvent id="S1" label="Incorrect G1 stage"/>
    <intermediateEvent id="S2" label="Incorrect G2 stage"/>
    <intermediateEvent id="S3" label="Other faults">
      <basicEvent id="E1" label="GFR = 90"/>
    </intermediateEvent>
  </topEvent>
  <mappings>
    <mapping name="G2" condition="GFR &gt;= 60 &amp;&amp; GFR &lt; 90 -&gt; G2"/>
    <mapping name="G1" condition="GFR &gt;= 90 -&gt; G1"/>
  </mappings>
</pattern>"""
        (case,) = parse_fault_tree(xml).test_cases
        assert case.triggers == ("E1", "S1", "T")
        assert case.inputs == {"GFR": 90}


class TestSafetyProperty:
    def test_parent_and_top_only(self):
        result = parse_fault_tree(SAFETY_FAULT_TREE)
        (case,) = result.test_cases
        assert case.triggers == ("E1", "M2", "T")
        assert case.inputs == {"Radar blocked": True}
        assert case.pattern is FaultPatternType.SAFETY_PROPERTY

    def test_property_node(self):
        result = parse_fault_tree(SAFETY_FAULT_TREE)
        prop = [n for n in result.nodes if n.type is FaultNodeType.PROPERTY]
        assert [n.id for n in prop] == ["P1"]
        assert ("T", "P1") in [(e.source, e.target) for e in result.edges]


class TestStructure:
    def test_duplicate_labels_collapse(self):
        doc = """<faultTree><topEvent id="T" label="Top">
            <intermediateEvent id="A" label="Shared"><basicEvent id="B1" label="x &gt; 1"/></intermediateEvent>
            <intermediateEvent id="B" label="Shared"><basicEvent id="B2" label="x &gt; 2"/></intermediateEvent>
        </topEvent></faultTree>"""
        result = parse_fault_tree(doc)
        shared = [n for n in result.nodes if n.label == "Shared"]
        assert [n.id for n in shared] == ["A"]
        assert len(result.edges) == 4

    def test_unlabelled_type_falls_back_to_structure(self):
        doc = """<faultTree><topEvent id="T" label="Top">
            <basicEvent id="B1" label="Temp &gt; 80"/>
        </topEvent></faultTree>"""
        (case,) = parse_fault_tree(doc).test_cases
        assert case.pattern is FaultPatternType.INVALID_RANGE
        assert case.inputs == {"Temp": 81}

    def test_serializes_edges_as_from_to(self):
        data = parse_fault_tree(RANGE_FAULT_TREE).to_dict()
        assert data["edges"][0] == {"from": "T1", "to": "I1"}
        assert data["testCases"][0]["type"] == "fault"

    def test_unknown_root(self):
        with pytest.raises(ParseError):
            parse_fault_tree("<classificationTree/>")

    def test_malformed(self):
        with pytest.raises(ParseError):
            parse_fault_tree("<faultTree>")
