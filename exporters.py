"""
CSV export of generated test cases.
"""
import csv
import io
from typing import Any, List, Sequence

from data_models import FaultTestCase, SyntaxTestCase, TestCase


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _ordered_keys(rows: Sequence[dict]) -> List[str]:
    keys: List[str] = []
    for row in rows:
        for key in row:
            if key not in keys:
                keys.append(key)
    return keys


def test_cases_to_csv(test_cases: Sequence[TestCase]) -> str:
    """
    Render test cases as CSV.

    Columns: Test Case ID, Type, one per input, one per expected output and a
    cumulative Coverage (%) column.
    """
    inputs = _ordered_keys([tc.inputs for tc in test_cases])
    expected = _ordered_keys([tc.expected for tc in test_cases])
    total = len(test_cases)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Test Case ID", "Type"] + inputs + expected + ["Coverage (%)"])
    for index, tc in enumerate(test_cases, start=1):
        row = [tc.id, tc.type.value]
        row += [_cell(tc.inputs.get(name)) for name in inputs]
        row += [_cell(tc.expected.get(name)) for name in expected]
        row.append(f"{index / total * 100:.2f}")
        writer.writerow(row)
    return buffer.getvalue()


def fault_cases_to_csv(cases: Sequence[FaultTestCase]) -> str:
    """Render fault test cases: id, description, inputs, then the trigger chain joined by " > "."""
    inputs = _ordered_keys([c.inputs for c in cases])
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Test Case ID", "Description"] + inputs + ["Triggers"])
    for case in cases:
        writer.writerow(
            [case.id, case.description]
            + [_cell(case.inputs.get(name)) for name in inputs]
            + [" > ".join(case.triggers)]
        )
    return buffer.getvalue()


SYNTAX_COLUMNS = ["Name", "valid", "invalidValue", "invalidOmission", "invalidAddition", "invalidSubstitution"]


def syntax_cases_to_csv(cases: Sequence[SyntaxTestCase]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(SYNTAX_COLUMNS)
    for case in cases:
        writer.writerow([
            case.name,
            case.valid,
            case.invalid_value,
            case.invalid_omission,
            case.invalid_addition,
            case.invalid_substitution,
        ])
    return buffer.getvalue()
