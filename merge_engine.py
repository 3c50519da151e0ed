"""
Merge engine: combine a stored classification tree with a newly ingested one.

Numeric variables are coarsened (overlapping intervals coalesce), discrete
variables are unioned by label. Both input trees are left untouched.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from data_models import (
    ClassificationTree,
    MergeConflict,
    MergeResult,
    Output,
    TerminalClass,
    Variable,
    format_number,
)
from tree_builder import class_map

logger = logging.getLogger(__name__)


@dataclass
class _Interval:
    min: float
    max: float
    valid: bool
    precision: Optional[int]
    first: TerminalClass  # earliest contributor in sort order


def ranges_overlap(a_min: float, a_max: float, b_min: float, b_max: float) -> bool:
    """Two closed intervals share at least one point."""
    return not (a_max < b_min or b_max < a_min)


def coalesce_intervals(classes: List[TerminalClass]) -> List[_Interval]:
    """
    Sort by min (stable) and fuse every pair that is not disjoint.

    Returns:
        Disjoint intervals in ascending order; validity is the OR of contributors
    """
    if not classes:
        return []
    ordered = sorted(classes, key=lambda tc: tc.min)
    head = ordered[0]
    current = _Interval(head.min, head.max, head.valid, head.precision, head)
    merged = []
    for tc in ordered[1:]:
        if ranges_overlap(current.min, current.max, tc.min, tc.max):
            current.min = min(current.min, tc.min)
            current.max = max(current.max, tc.max)
            current.valid = current.valid or tc.valid
            if tc.precision is not None:
                current.precision = max(current.precision or 0, tc.precision)
        else:
            merged.append(current)
            current = _Interval(tc.min, tc.max, tc.valid, tc.precision, tc)
    merged.append(current)
    return merged


def _interval_class(name: str, interval: _Interval, idx: int) -> TerminalClass:
    first = interval.first
    if first.min == interval.min and first.max == interval.max:
        # Nothing was absorbed beyond this class's own extent: keep its identity
        return TerminalClass(
            id=first.id,
            label=first.label,
            min=interval.min,
            max=interval.max,
            valid=interval.valid,
            precision=interval.precision,
        )
    prefix = "merged" if interval.valid else "merged-invalid"
    label = f"{format_number(interval.min)}-{format_number(interval.max)}"
    return TerminalClass(
        id=f"{name}-{prefix}-{idx}-{label}",
        label=label,
        min=interval.min,
        max=interval.max,
        valid=interval.valid,
        precision=interval.precision,
    )


class MergeEngine:
    """Combines two classification trees without mutating either of them."""

    def merge(self, existing: Optional[ClassificationTree], incoming: ClassificationTree) -> MergeResult:
        """
        Merge `incoming` into `existing`.

        Variables only in `incoming` are appended unchanged; variables in both
        are merged numerically or discretely depending on their types.

        Args:
            existing: Previously stored tree (None means nothing to merge with)
            incoming: Newly ingested tree

        Returns:
            MergeResult with the merged tree and any validity conflicts
        """
        if existing is None:
            return MergeResult(merged=incoming, warnings=())

        warnings: List[MergeConflict] = []
        incoming_by_name: Dict[str, Variable] = {v.name: v for v in incoming.variables}
        existing_names = {v.name for v in existing.variables}

        variables: List[Variable] = []
        for base in existing.variables:
            other = incoming_by_name.get(base.name)
            if other is None:
                variables.append(base)
                continue
            warnings.extend(self.find_conflicts(base, other))
            variables.append(self.merge_variable(base, other))

        added = [v for v in incoming.variables if v.name not in existing_names]
        variables.extend(added)

        for conflict in warnings:
            logger.warning(
                f"Merge conflict on {conflict.variable}.{conflict.label}: "
                f"existing valid={conflict.existing_valid}, incoming valid={conflict.incoming_valid}"
            )
        logger.info(
            f"Merged trees: {len(existing.variables)} existing + {len(added)} new variables, "
            f"{len(warnings)} conflicts"
        )

        merged = ClassificationTree(
            use_case=incoming.use_case,
            variables=tuple(variables),
            output=self.merge_output(existing.output, incoming.output),
            system=incoming.system,
        )
        return MergeResult(merged=merged, warnings=tuple(warnings))

    def find_conflicts(self, base: Variable, other: Variable) -> List[MergeConflict]:
        """Labels present on both sides whose validity flags differ."""
        base_classes = class_map(base.terminal_classes)
        conflicts = []
        for tc in other.terminal_classes:
            found = base_classes.get(tc.label)
            if found is not None and found.valid != tc.valid:
                conflicts.append(MergeConflict(
                    variable=base.name,
                    label=tc.label,
                    existing_valid=found.valid,
                    incoming_valid=tc.valid,
                ))
        return conflicts

    def merge_variable(self, base: Variable, other: Variable) -> Variable:
        if base.is_numeric and other.is_numeric:
            classes = self.merge_numeric(base.name, base.terminal_classes, other.terminal_classes)
        else:
            classes = self.merge_discrete(base.name, base.terminal_classes, other.terminal_classes)
        return Variable(
            name=base.name,
            type=base.type,
            terminal_classes=classes,
            parent_classification=base.parent_classification or other.parent_classification,
        )

    def merge_numeric(
        self,
        name: str,
        existing: Tuple[TerminalClass, ...],
        incoming: Tuple[TerminalClass, ...],
    ) -> Tuple[TerminalClass, ...]:
        """
        Coalesce valid and invalid intervals separately.

        Classes without an interval (literal values) are unioned by label after
        the intervals.
        """
        combined = list(existing) + list(incoming)
        intervals = [tc for tc in combined if tc.has_interval]
        valid = coalesce_intervals([tc for tc in intervals if tc.valid])
        invalid = coalesce_intervals([tc for tc in intervals if not tc.valid])

        classes = [_interval_class(name, iv, i) for i, iv in enumerate(valid)]
        classes += [_interval_class(name, iv, i) for i, iv in enumerate(invalid)]
        classes.sort(key=lambda tc: tc.min)

        seen = {tc.label for tc in classes}
        for tc in combined:
            if not tc.has_interval and tc.label not in seen:
                classes.append(tc)
                seen.add(tc.label)
        return tuple(classes)

    def merge_discrete(
        self,
        name: str,
        existing: Tuple[TerminalClass, ...],
        incoming: Tuple[TerminalClass, ...],
    ) -> Tuple[TerminalClass, ...]:
        """
        Union by label (existing wins); several invalid buckets collapse into one
        canonical ``<name>=other`` bucket.
        """
        by_label: Dict[str, TerminalClass] = {}
        for tc in list(existing) + list(incoming):
            by_label.setdefault(tc.label, tc)

        valid = [tc for tc in by_label.values() if tc.valid]
        invalid = [tc for tc in by_label.values() if not tc.valid]
        if len(invalid) > 1:
            invalid = [TerminalClass(
                id=f"{name}-enum-invalid",
                label=f"{name}=other",
                values=(),
                valid=False,
            )]
        return tuple(valid + invalid)

    def merge_output(self, existing: Optional[Output], incoming: Optional[Output]) -> Optional[Output]:
        if existing is None or incoming is None:
            return incoming or existing
        labels = {tc.label for tc in existing.terminal_classes}
        extra = tuple(tc for tc in incoming.terminal_classes if tc.label not in labels)
        return Output(name=existing.name, terminal_classes=existing.terminal_classes + extra)
