import pytest

from data_models import TestCase, TestCaseType
from reducer import Reducer


def _case(case_id, **inputs):
    return TestCase(id=case_id, type=TestCaseType.VALID, inputs=inputs)


class TestReducer:
    def test_deduplicates_keeping_first(self):
        cases = [_case("TC-001", a=1), _case("TC-002", a=1), _case("TC-003", a=2)]
        kept = Reducer().reduce(cases)
        assert [tc.id for tc in kept] == ["TC-001", "TC-003"]

    def test_key_order_does_not_matter(self):
        first = TestCase(id="1", type=TestCaseType.VALID, inputs={"a": 1, "b": 2})
        second = TestCase(id="2", type=TestCaseType.VALID, inputs={"b": 2, "a": 1})
        assert len(Reducer().reduce([first, second])) == 1

    def test_cap_records_notice(self):
        cases = [_case(f"TC-{i}", a=i) for i in range(10)]
        reducer = Reducer(cap=4)
        kept = reducer.reduce(cases)
        assert [tc.id for tc in kept] == ["TC-0", "TC-1", "TC-2", "TC-3"]
        assert reducer.last_notice.cap == 4
        assert reducer.last_notice.dropped == 6
        assert "6 test case(s) dropped" in str(reducer.last_notice)

    def test_cap_with_only_duplicates_left(self):
        cases = [_case("a", x=1), _case("b", x=2), _case("c", x=1)]
        reducer = Reducer(cap=2)
        assert len(reducer.reduce(cases)) == 2
        assert reducer.last_notice is None

    def test_per_call_cap(self):
        cases = [_case(f"TC-{i}", a=i) for i in range(5)]
        reducer = Reducer(cap=100)
        assert len(reducer.reduce(cases, cap=2)) == 2
        assert len(reducer.reduce(cases)) == 5
        assert reducer.last_notice is None

    def test_custom_key(self):
        cases = [_case("a", x=1, y=1), _case("b", x=1, y=2)]
        kept = Reducer(key=lambda tc: str(tc.inputs["x"])).reduce(cases)
        assert [tc.id for tc in kept] == ["a"]

    def test_negative_cap(self):
        with pytest.raises(ValueError):
            Reducer(cap=-1)
