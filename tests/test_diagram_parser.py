import base64
import math
import zlib
from urllib.parse import quote

import pytest
from lxml import etree

from data_models import VariableType
from diagram_parser import _inflate
from errors import ParseError
from xml_ingestion import local_name, parse
from xml_samples import DIAGRAM


def _payload(model: str) -> str:
    deflate = zlib.compressobj(9, zlib.DEFLATED, -15)
    raw = deflate.compress(quote(model).encode("utf-8")) + deflate.flush()
    return base64.b64encode(raw).decode("ascii")


def _compressed_mxfile(model: str) -> str:
    return f'<mxfile><diagram id="d1" name="Page-1">{_payload(model)}</diagram></mxfile>'


class TestDiagram:
    def test_root_becomes_use_case(self):
        tree = parse(DIAGRAM)
        assert tree.use_case.id == "UC_Default"
        assert tree.use_case.name == "Cruise Control"
        assert tree.system == "Cruise Control"

    def test_variable_with_ranges(self):
        speed = parse(DIAGRAM).get_variable("Speed")
        assert speed.type is VariableType.FLOAT
        low, high = speed.terminal_classes
        assert (low.min, low.max) == (0, 30)
        assert low.valid
        assert high.max == math.inf
        assert not high.valid

    def test_identical_groups_are_merged(self):
        rain = parse(DIAGRAM).get_variable("Rain")
        assert rain.parent_classification == "Weather/Climate"
        assert rain.type is VariableType.BOOLEAN
        assert len(rain.terminal_classes) == 2

    def test_variables_appear_once(self):
        assert parse(DIAGRAM).variable_names() == ["Speed", "Rain"]

    def test_output_from_root_terminals(self):
        output = parse(DIAGRAM).output
        assert output.name == "controllerAction"
        assert [tc.label for tc in output.terminal_classes] == ["accelerate"]

    def test_compressed_payload(self):
        tree = parse(_compressed_mxfile(DIAGRAM))
        assert tree.variable_names() == ["Speed", "Rain"]

    def test_compressed_payload_uses_hardened_parser(self):
        model = _inflate(_payload(DIAGRAM.replace("<root>", "<root><!-- exported -->", 1)))
        assert list(model.iter(etree.Comment)) == []
        assert local_name(model) == "mxGraphModel"

    def test_html_values_are_cleaned(self):
        doc = DIAGRAM.replace('value="Speed"', 'value="&lt;b&gt;Speed&lt;/b&gt;"')
        assert "Speed" in parse(doc).variable_names()

    def test_empty_model(self):
        with pytest.raises(ParseError):
            parse("<mxGraphModel><root/></mxGraphModel>")

    def test_bad_payload(self):
        with pytest.raises(ParseError):
            parse('<mxfile><diagram id="d1">not-base64!!</diagram></mxfile>')
