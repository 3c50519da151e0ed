"""
Cap-and-dedup pass over an already generated test-case list.
"""
import logging
from typing import Callable, List, Optional, Sequence

from data_models import TestCase
from errors import ReductionCapReached

logger = logging.getLogger(__name__)


def default_key(test_case: TestCase) -> str:
    return test_case.canonical_key()


class Reducer:
    """
    Keeps the first occurrence of every distinct test case, up to a cap.

    When the cap cuts candidates off, the notice is kept in `last_notice`
    instead of being raised.
    """

    def __init__(self, cap: int = 10000, key: Optional[Callable[[TestCase], str]] = None):
        if cap < 0:
            raise ValueError(f"cap must not be negative, got {cap}")
        self.cap = cap
        self.key = key or default_key
        self.last_notice: Optional[ReductionCapReached] = None

    def reduce(self, test_cases: Sequence[TestCase], cap: Optional[int] = None) -> List[TestCase]:
        """
        Deduplicate and cap.

        Args:
            test_cases: Candidates in generation order
            cap: Overrides the instance cap for this call

        Returns:
            At most `cap` test cases, in their original relative order
        """
        limit = self.cap if cap is None else cap
        self.last_notice = None
        kept: List[TestCase] = []
        seen = set()
        duplicates = 0
        for index, tc in enumerate(test_cases):
            if len(kept) >= limit:
                remaining = self._distinct_remaining(test_cases[index:], seen)
                if remaining:
                    self.last_notice = ReductionCapReached(limit, remaining)
                    logger.info(str(self.last_notice))
                break
            key = self.key(tc)
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)
            kept.append(tc)

        if duplicates:
            logger.debug(f"Reducer dropped {duplicates} duplicate test case(s)")
        return kept

    def _distinct_remaining(self, rest: Sequence[TestCase], seen: set) -> int:
        pending = set()
        for tc in rest:
            key = self.key(tc)
            if key not in seen:
                pending.add(key)
        return len(pending)
