"""
Main orchestrator that runs one test-generation request end to end.
"""
import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from combinatorial_generator import CombinatorialGenerator
from data_models import (
    ClassificationTree,
    DiffReport,
    GenerationResult,
    Partition,
    TerminalClass,
    TestCase,
    TestCaseType,
)
from diff_engine import DiffEngine
from errors import DiffComputationError
from merge_engine import MergeEngine
from partition_builder import PartitionBuilder
from reducer import Reducer
from tree_builder import TreeBuilder
from xml_ingestion import parse

logger = logging.getLogger(__name__)

Baseline = Union[ClassificationTree, Dict[str, Any], None]

CCTM = "cctm"
ECP = "ecp"
MODES = (CCTM, ECP)


class TestGenerationOrchestrator:
    """
    Coordinates ingestion, merge, diff, partitioning, generation and reduction.

    The previous tree version is always passed in explicitly; the orchestrator
    does no storage of its own.
    """
    __test__ = False

    def __init__(
        self,
        tree_builder: Optional[TreeBuilder] = None,
        merge_engine: Optional[MergeEngine] = None,
        diff_engine: Optional[DiffEngine] = None,
        partition_builder: Optional[PartitionBuilder] = None,
    ):
        self.tree_builder = tree_builder or TreeBuilder()
        self.merge_engine = merge_engine or MergeEngine()
        self.diff_engine = diff_engine or DiffEngine()
        self.partition_builder = partition_builder or PartitionBuilder()

    def _load_baseline(self, baseline: Baseline, warnings: List[Dict[str, Any]]) -> Optional[ClassificationTree]:
        if baseline is None:
            return None
        try:
            return self.tree_builder.build(baseline)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Stored baseline is unusable, treating request as first version: {e}")
            warnings.append({"type": "baseline_unusable", "message": str(e)})
            return None

    def _merge(
        self,
        baseline: Optional[ClassificationTree],
        incoming: ClassificationTree,
        warnings: List[Dict[str, Any]],
    ) -> ClassificationTree:
        if baseline is None:
            return incoming
        try:
            result = self.merge_engine.merge(baseline, incoming)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Merge failed, continuing with the incoming tree: {e}")
            warnings.append({"type": "merge_failed", "message": str(e)})
            return incoming
        for conflict in result.warnings:
            entry = conflict.to_dict()
            entry["type"] = "merge_conflict"
            warnings.append(entry)
        return result.merged

    def _diff(
        self,
        baseline: Optional[ClassificationTree],
        incoming: ClassificationTree,
        warnings: List[Dict[str, Any]],
    ) -> DiffReport:
        try:
            return self.diff_engine.compare(baseline, incoming)
        except DiffComputationError as e:
            logger.warning(f"{e}; falling back to first-version diff")
            warnings.append({"type": "diff_failed", "message": str(e)})
            return self.diff_engine.compare(None, incoming)

    @staticmethod
    def changed_classes(diff: DiffReport) -> Tuple[Set[str], Dict[str, List[TerminalClass]]]:
        """Names of added variables and, per modified variable, its added/modified classes."""
        added_vars = {c.name for c in diff.variable_diff.added}
        changed: Dict[str, List[TerminalClass]] = {}
        for change in diff.variable_diff.modified:
            for tc in change.class_changes.added + change.class_changes.modified:
                changed.setdefault(change.name, []).append(tc.current)
        return added_vars, changed

    @staticmethod
    def touches(merged: TerminalClass, changed: TerminalClass) -> bool:
        """Whether a merged class covers a changed incoming class (label, interval or value overlap)."""
        if merged.label == changed.label:
            return True
        if merged.has_interval and changed.has_interval:
            return not (merged.max < changed.min or changed.max < merged.min)
        return bool(set(merged.values) & set(changed.values))

    def _only_changed(self, cases: List[TestCase], partitions: List[Partition], tree: ClassificationTree,
                      diff: DiffReport) -> List[TestCase]:
        added_vars, changed = self.changed_classes(diff)
        touched: Set[Tuple[str, str]] = set()
        for variable in tree.variables:
            for tc in variable.terminal_classes:
                if any(self.touches(tc, c) for c in changed.get(variable.name, ())):
                    touched.add((variable.name, tc.id))
        names = [p.name for p in partitions]
        kept = []
        for tc in cases:
            for name, item_id in zip(names, tc.meta):
                if name in added_vars or (name, item_id) in touched:
                    kept.append(tc)
                    break
        logger.info(f"Kept {len(kept)} of {len(cases)} test cases touching changed classes")
        return kept

    def generate(
        self,
        xml_text,
        threshold: int = 10000,
        baseline: Baseline = None,
        cap: Optional[int] = None,
        seed: Optional[int] = None,
        only_changed: bool = False,
        mode: str = CCTM,
    ) -> GenerationResult:
        """
        Run one generation request.

        Args:
            xml_text: Classification-tree XML (str or bytes)
            threshold: Largest Cartesian product generated in full
            baseline: Previously stored tree (dataclass or to_dict() snapshot)
            cap: Reducer cap, defaults to `threshold`
            seed: Seed for the sampling branch
            only_changed: Keep only cases touching added/modified classes
            mode: "cctm" for the full combinatorial suite, "ecp" for valid
                combinations plus one case per invalid class

        Returns:
            GenerationResult

        Raises:
            ParseError: If the XML cannot be ingested
            ValueError: If `mode` is unknown
        """
        if mode not in MODES:
            raise ValueError(f"Unknown generation mode: {mode}")
        warnings: List[Dict[str, Any]] = []
        notices: List[Dict[str, Any]] = []

        incoming = self.tree_builder.build(parse(xml_text))
        previous = self._load_baseline(baseline, warnings)
        merged = self._merge(previous, incoming, warnings)
        diff = self._diff(previous, incoming, warnings)

        partitions = self.partition_builder.build(merged.variables)
        display = self.partition_builder.build_display(merged.variables, merged.output)

        generator = CombinatorialGenerator(threshold=threshold, seed=seed)
        if mode == ECP:
            cases = generator.generate_single_fault(partitions)
        else:
            cases = generator.generate(partitions)
        warnings.extend({"type": "empty_partition", "message": m} for m in generator.warnings)
        if generator.overflowed:
            notices.append({
                "type": "generation_overflow",
                "message": f"Cartesian product exceeds {threshold}; {len(cases)} combinations sampled",
                "threshold": threshold,
            })

        if only_changed and previous is not None:
            cases = self._only_changed(cases, partitions, merged, diff)

        limit = threshold if cap is None else cap
        if len(cases) > limit:
            reducer = Reducer(cap=limit)
            cases = reducer.reduce(cases)
            if reducer.last_notice is not None:
                notices.append({
                    "type": "reduction_cap",
                    "message": str(reducer.last_notice),
                    "cap": reducer.last_notice.cap,
                    "dropped": reducer.last_notice.dropped,
                })

        valid = sum(1 for tc in cases if tc.type is TestCaseType.VALID)
        stats = {
            "total": len(cases),
            "valid": valid,
            "invalid": len(cases) - valid,
            "strategy": generator.last_strategy,
        }
        logger.info(f"Generated {stats['total']} test cases ({valid} valid) via {stats['strategy']}")
        return GenerationResult(
            tree=merged,
            diff=diff,
            partitions=partitions,
            display_partitions=display,
            test_cases=cases,
            incoming=incoming,
            warnings=warnings,
            notices=notices,
            stats=stats,
        )
