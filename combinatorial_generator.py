"""
Combinatorial test-case generation over partitions.

Below the threshold the full Cartesian product is emitted and deduplicated;
above it the generator falls back to seeded uniform random sampling.
"""
import itertools
import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence

from data_models import Partition, PartitionItem, TestCase, TestCaseType
from errors import GenerationOverflow

logger = logging.getLogger(__name__)

FULL_PRODUCT = "full_product"
RANDOM_SAMPLING = "random_sampling"
SINGLE_FAULT = "single_fault"


def format_case_id(index: int, prefix: str = "TC") -> str:
    """1 -> "TC-001"."""
    return f"{prefix}-{index:03d}"


def estimate_size(partitions: Sequence[Partition], threshold: int) -> int:
    """
    Product of partition sizes.

    Raises:
        GenerationOverflow: As soon as the running product exceeds `threshold`
    """
    size = 1
    for partition in partitions:
        size *= len(partition.items)
        if size > threshold:
            raise GenerationOverflow(threshold)
    return size


def _build_case(index: int, names: List[str], combo: Sequence[PartitionItem]) -> TestCase:
    inputs = {name: item.sample for name, item in zip(names, combo)}
    invalid = any(not item.valid for item in combo)
    return TestCase(
        id=format_case_id(index),
        type=TestCaseType.INVALID if invalid else TestCaseType.VALID,
        inputs=inputs,
        meta=tuple(item.id for item in combo),
    )


def _renumber(cases: Iterable[TestCase]) -> List[TestCase]:
    return [
        TestCase(id=format_case_id(i), type=tc.type, inputs=tc.inputs, expected=tc.expected, meta=tc.meta)
        for i, tc in enumerate(cases, start=1)
    ]


class CombinatorialGenerator:
    """
    Generates test cases from partitions.

    Args:
        threshold: Largest product size materialized in full
        seed: Seed for the sampling branch (None = nondeterministic)
        unique: Deduplicate draws in the sampling branch
    """

    def __init__(self, threshold: int = 10000, seed: Optional[int] = None, unique: bool = False):
        if threshold < 1:
            raise ValueError(f"threshold must be positive, got {threshold}")
        self.threshold = threshold
        self.unique = unique
        self.rng = random.Random(seed)
        self.last_strategy: Optional[str] = None
        self.overflowed = False
        self.warnings: List[str] = []

    def _usable(self, partitions: Sequence[Partition]) -> List[Partition]:
        usable = []
        for partition in partitions:
            if partition.items:
                usable.append(partition)
            else:
                message = f"Partition '{partition.name}' has no items; skipped"
                logger.warning(message)
                self.warnings.append(message)
        return usable

    def generate(self, partitions: Sequence[Partition]) -> List[TestCase]:
        """
        Generate test cases.

        Args:
            partitions: Partitions in declaration order

        Returns:
            Test cases with ids TC-001, TC-002, ...
        """
        self.warnings = []
        self.overflowed = False
        partitions = self._usable(partitions)
        if not partitions:
            self.last_strategy = FULL_PRODUCT
            return []

        try:
            size = estimate_size(partitions, self.threshold)
        except GenerationOverflow:
            self.last_strategy = RANDOM_SAMPLING
            self.overflowed = True
            logger.info(f"Product exceeds threshold {self.threshold}; sampling {self.threshold} combinations")
            return self._sample(partitions)

        self.last_strategy = FULL_PRODUCT
        logger.info(f"Generating full product of {size} combinations over {len(partitions)} partitions")
        return self._full_product(partitions)

    def _full_product(self, partitions: Sequence[Partition]) -> List[TestCase]:
        names = [p.name for p in partitions]
        seen = set()
        cases = []
        for combo in itertools.product(*(p.items for p in partitions)):
            case = _build_case(len(cases) + 1, names, combo)
            key = case.canonical_key()
            if key in seen:
                continue
            seen.add(key)
            cases.append(case)
        return cases

    def _sample(self, partitions: Sequence[Partition]) -> List[TestCase]:
        names = [p.name for p in partitions]
        cases = []
        if not self.unique:
            for i in range(self.threshold):
                combo = [self.rng.choice(p.items) for p in partitions]
                cases.append(_build_case(i + 1, names, combo))
            return cases

        seen = set()
        max_draws = 10 * self.threshold
        draws = 0
        while len(cases) < self.threshold and draws < max_draws:
            draws += 1
            combo = [self.rng.choice(p.items) for p in partitions]
            case = _build_case(len(cases) + 1, names, combo)
            key = case.canonical_key()
            if key not in seen:
                seen.add(key)
                cases.append(case)
        if len(cases) < self.threshold:
            logger.info(f"Unique sampling stopped after {draws} draws with {len(cases)} cases")
        return cases

    def generate_single_fault(self, partitions: Sequence[Partition]) -> List[TestCase]:
        """
        Classic ECP suite: every combination of valid items, then one Invalid
        case per invalid item with all other variables at their first valid sample.
        """
        self.warnings = []
        partitions = self._usable(partitions)
        if not partitions:
            self.last_strategy = SINGLE_FAULT
            return []

        valid_only = [
            Partition(name=p.name, items=tuple(i for i in p.items if i.valid) or p.items[:1])
            for p in partitions
        ]
        skipped = list(self.warnings)
        cases = self.generate(valid_only)
        self.warnings = skipped + self.warnings

        baseline: Dict[str, PartitionItem] = {p.name: p.items[0] for p in valid_only}
        names = [p.name for p in partitions]
        seen = {tc.canonical_key() for tc in cases}
        for partition in partitions:
            for item in partition.items:
                if item.valid:
                    continue
                combo = [item if name == partition.name else baseline[name] for name in names]
                case = _build_case(len(cases) + 1, names, combo)
                if case.canonical_key() not in seen:
                    seen.add(case.canonical_key())
                    cases.append(case)

        self.last_strategy = SINGLE_FAULT
        return _renumber(cases)
