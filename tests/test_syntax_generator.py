import re

import pytest

from data_models import SyntaxDefinition
from errors import ParseError
from syntax_generator import (
    ALPHANUMERIC,
    MONTHS,
    SYMBOLS,
    SyntaxTestGenerator,
    generate_syntax_tests,
    parse_syntax_definitions,
)
from xml_samples import SYNTAX_DICTIONARY, TREE_V1


class TestDefinitions:
    def test_inputs_then_output(self):
        definitions = parse_syntax_definitions(SYNTAX_DICTIONARY)
        assert [(d.name, d.pattern) for d in definitions] == [
            ("Zip", "^[0-9]{5}$"),
            ("Date", "[0-9]{2}[A-Z][a-z]{2}[0-9]{4}"),
            ("Output", "OK|FAIL"),
        ]
        assert (definitions[0].type, definitions[0].length) == ("string", "5")
        assert definitions[1].type == "date"

    def test_no_use_case(self):
        assert parse_syntax_definitions("<UC/>") == []

    def test_unknown_root(self):
        with pytest.raises(ParseError):
            parse_syntax_definitions(TREE_V1)


class TestGeneration:
    def test_variants(self):
        zip_case, date_case, output_case = generate_syntax_tests(SYNTAX_DICTIONARY, seed=7)

        assert re.fullmatch(r"[0-9]{5}", zip_case.valid)
        assert zip_case.invalid_value[:-1] == zip_case.valid
        assert zip_case.invalid_value[-1] in SYMBOLS
        assert len(zip_case.invalid_addition) == 6
        assert len([c for c in zip_case.invalid_addition if c in SYMBOLS]) == 1
        assert len(zip_case.invalid_omission) == 4
        assert len(zip_case.invalid_substitution) == 5
        assert all(c in ALPHANUMERIC for c in zip_case.invalid_substitution)

        assert output_case.valid in ("OK", "FAIL")
        assert date_case.valid[2:5] in MONTHS

    def test_dates_are_real_days(self):
        generator = SyntaxTestGenerator(seed=3)
        definition = SyntaxDefinition(name="Date", pattern=".*")
        for _ in range(50):
            sample = generator.valid_sample(definition)
            day, month, year = int(sample[:2]), sample[2:5], int(sample[5:])
            assert 2000 <= year <= 2100
            assert 1 <= day <= (29 if month == "Feb" else 31)

    def test_seeded_runs_repeat(self):
        first = generate_syntax_tests(SYNTAX_DICTIONARY, seed=11)
        second = generate_syntax_tests(SYNTAX_DICTIONARY, seed=11)
        assert [c.to_dict() for c in first] == [c.to_dict() for c in second]

    def test_empty_match(self):
        (case,) = SyntaxTestGenerator(seed=1).generate([SyntaxDefinition(name="Blank", pattern="")])
        assert case.valid == ""
        assert case.invalid_omission == ""
        assert len(case.invalid_substitution) == 1

    def test_bad_pattern(self):
        with pytest.raises(ParseError):
            SyntaxTestGenerator().generate([SyntaxDefinition(name="X", pattern="[")])

    def test_serializes(self):
        (case,) = SyntaxTestGenerator(seed=2).generate([SyntaxDefinition(name="Code", pattern="AB")])
        data = case.to_dict()
        assert data["testCases"]["valid"] == "AB"
        assert set(data["testCases"]) == {
            "valid", "invalidValue", "invalidOmission", "invalidAddition", "invalidSubstitution",
        }
