"""
Diff engine: compare two classification-tree versions and derive the impact
on existing test cases.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from data_models import (
    ChangeStatus,
    ClassDiff,
    ClassificationTree,
    DiffReport,
    Impact,
    ImpactRule,
    ImpactTarget,
    MergedTree,
    Output,
    OutputDiff,
    SourceVersion,
    TerminalClass,
    TerminalClassChange,
    Variable,
    VariableChange,
    VariableDiff,
)
from errors import DiffComputationError
from tree_builder import class_map, variable_map

logger = logging.getLogger(__name__)

RANGE_CHANGED = "range_changed"
VALIDITY_CHANGED = "validity_changed"


def compare_terminal_classes(old: Tuple[TerminalClass, ...], new: Tuple[TerminalClass, ...]) -> ClassDiff:
    """
    Diff two terminal-class lists by label.

    A label present on both sides is modified when its range string or its
    validity differs; range changes take precedence in `change_type`.
    """
    diff = ClassDiff()
    old_classes = class_map(old)
    new_classes = class_map(new)

    for label, tc in new_classes.items():
        if label not in old_classes:
            diff.added.append(TerminalClassChange(name=label, status=ChangeStatus.ADDED, new=tc))

    for label, tc in old_classes.items():
        if label not in new_classes:
            diff.removed.append(TerminalClassChange(name=label, status=ChangeStatus.REMOVED, old=tc))
            continue
        other = new_classes[label]
        range_changed = tc.range_string() != other.range_string()
        if range_changed or tc.valid != other.valid:
            diff.modified.append(TerminalClassChange(
                name=label,
                status=ChangeStatus.MODIFIED,
                old=tc,
                new=other,
                change_type=RANGE_CHANGED if range_changed else VALIDITY_CHANGED,
            ))
        else:
            diff.unchanged.append(TerminalClassChange(name=label, status=ChangeStatus.UNCHANGED, old=tc, new=other))
    return diff


def compare_variables(old: Dict[str, Variable], new: Dict[str, Variable]) -> VariableDiff:
    """Every name in old ∪ new lands in exactly one bucket."""
    diff = VariableDiff()
    for name, variable in new.items():
        if name not in old:
            diff.added.append(VariableChange(name=name, status=ChangeStatus.ADDED, new=variable))
    for name, variable in old.items():
        if name not in new:
            diff.removed.append(VariableChange(name=name, status=ChangeStatus.REMOVED, old=variable))
            continue
        classes = compare_terminal_classes(variable.terminal_classes, new[name].terminal_classes)
        status = ChangeStatus.MODIFIED if classes.has_changes else ChangeStatus.UNCHANGED
        diff_bucket = diff.modified if classes.has_changes else diff.unchanged
        diff_bucket.append(VariableChange(
            name=name,
            status=status,
            old=variable,
            new=new[name],
            class_changes=classes,
        ))
    return diff


def compare_outputs(old: Optional[Output], new: Optional[Output]) -> OutputDiff:
    if old is None and new is None:
        return OutputDiff(status=ChangeStatus.UNCHANGED)
    if old is None:
        added = ClassDiff(added=[
            TerminalClassChange(name=tc.label, status=ChangeStatus.ADDED, new=tc) for tc in new.terminal_classes
        ])
        return OutputDiff(status=ChangeStatus.ADDED, class_changes=added, new=new)
    if new is None:
        removed = ClassDiff(removed=[
            TerminalClassChange(name=tc.label, status=ChangeStatus.REMOVED, old=tc) for tc in old.terminal_classes
        ])
        return OutputDiff(status=ChangeStatus.REMOVED, class_changes=removed, old=old)
    classes = compare_terminal_classes(old.terminal_classes, new.terminal_classes)
    changed = classes.has_changes or old.name != new.name
    return OutputDiff(
        status=ChangeStatus.MODIFIED if changed else ChangeStatus.UNCHANGED,
        class_changes=classes,
        old=old,
        new=new,
    )


def _tag(tc: TerminalClass, status: ChangeStatus, source: SourceVersion, **extra) -> TerminalClass:
    return replace(tc, status=status, source_version=source, **extra)


def _annotated_classes(changes: ClassDiff) -> List[TerminalClass]:
    tagged = []
    for change in changes.unchanged:
        tagged.append(_tag(change.new, ChangeStatus.UNCHANGED, SourceVersion.BOTH))
    for change in changes.added:
        tagged.append(_tag(change.new, ChangeStatus.ADDED, SourceVersion.NEW))
    for change in changes.removed:
        tagged.append(_tag(change.old, ChangeStatus.REMOVED, SourceVersion.OLD))
    for change in changes.modified:
        tagged.append(_tag(
            change.new, ChangeStatus.MODIFIED, SourceVersion.BOTH,
            change_type=change.change_type, previous=change.old,
        ))
    return tagged


def build_merged_tree(
    old: Optional[ClassificationTree],
    new: ClassificationTree,
    variable_diff: VariableDiff,
    output_diff: OutputDiff,
) -> MergedTree:
    """Single tree holding both versions; every variable and class carries status and source version."""
    status_map: Dict[str, ChangeStatus] = {}
    annotated: List[Variable] = []

    def whole(variable: Variable, status: ChangeStatus, source: SourceVersion) -> Variable:
        classes = tuple(_tag(tc, status, source) for tc in variable.terminal_classes)
        for tc in variable.terminal_classes:
            status_map[f"{variable.name}.{tc.label}"] = status
        return replace(variable, terminal_classes=classes, status=status, source_version=source)

    for change in variable_diff.unchanged:
        annotated.append(whole(change.new, ChangeStatus.UNCHANGED, SourceVersion.BOTH))
    for change in variable_diff.added:
        annotated.append(whole(change.new, ChangeStatus.ADDED, SourceVersion.NEW))
    for change in variable_diff.removed:
        annotated.append(whole(change.old, ChangeStatus.REMOVED, SourceVersion.OLD))
    for change in variable_diff.modified:
        classes = _annotated_classes(change.class_changes)
        for tc in classes:
            status_map[f"{change.name}.{tc.label}"] = tc.status
        annotated.append(replace(
            change.new,
            terminal_classes=tuple(classes),
            status=ChangeStatus.MODIFIED,
            source_version=SourceVersion.BOTH,
        ))

    output = None
    base_output = new.output or (old.output if old else None)
    if base_output is not None:
        classes = output_diff.class_changes
        tagged = [_tag(c.current, c.status, SourceVersion.BOTH) for c in classes.unchanged]
        tagged += [_tag(c.new, c.status, SourceVersion.NEW) for c in classes.added]
        tagged += [_tag(c.old, c.status, SourceVersion.OLD) for c in classes.removed]
        tagged += [
            _tag(c.new, c.status, SourceVersion.BOTH, change_type=c.change_type, previous=c.old)
            for c in classes.modified
        ]
        output = Output(
            name=base_output.name,
            terminal_classes=tuple(tagged),
            status=ChangeStatus.MODIFIED if output_diff.has_changes else ChangeStatus.UNCHANGED,
        )

    # Variables are listed in new-tree order, removed ones after
    order = {name: i for i, name in enumerate(new.variable_names())}
    annotated.sort(key=lambda v: order.get(v.name, len(order)))

    return MergedTree(
        use_case=new.use_case or (old.use_case if old else None),
        variables=tuple(annotated),
        output=output,
        node_status_map=status_map,
    )


def analyze_impact(variable_diff: VariableDiff, output_diff: OutputDiff) -> Impact:
    """One rule per triggering change event."""
    impact = Impact()

    for change in variable_diff.added:
        labels = tuple(tc.label for tc in change.new.terminal_classes)
        impact.test_cases_to_generate.append(ImpactTarget(
            variable_name=change.name, reason="variable_added", terminal_classes=labels,
        ))
        impact.rules.append(ImpactRule(
            type="variable_added",
            action="generate_test_cases",
            variable=change.name,
            description=f"Generate test cases covering all terminal classes of new variable: {change.name}",
        ))

    for change in variable_diff.removed:
        impact.test_cases_to_mark_obsolete.append(ImpactTarget(variable_name=change.name, reason="variable_removed"))
        impact.rules.append(ImpactRule(
            type="variable_removed",
            action="mark_obsolete",
            variable=change.name,
            description=f"Mark all test cases depending on variable {change.name} as obsolete",
        ))

    for change in variable_diff.modified:
        for tc in change.class_changes.added:
            impact.test_cases_to_generate.append(ImpactTarget(
                variable_name=change.name, terminal_class_name=tc.name, reason="terminal_class_added",
            ))
            impact.rules.append(ImpactRule(
                type="terminal_class_added",
                action="generate_test_cases",
                variable=change.name,
                terminal_class=tc.name,
                description=f"Generate test cases for new terminal class {change.name}.{tc.name}",
            ))
        for tc in change.class_changes.removed:
            impact.test_cases_to_mark_obsolete.append(ImpactTarget(
                variable_name=change.name, terminal_class_name=tc.name, reason="terminal_class_removed",
            ))
            impact.rules.append(ImpactRule(
                type="terminal_class_removed",
                action="mark_obsolete",
                variable=change.name,
                terminal_class=tc.name,
                description=f"Mark test cases using {change.name}.{tc.name} as obsolete",
            ))
        for tc in change.class_changes.modified:
            impact.test_cases_to_regenerate.append(ImpactTarget(
                variable_name=change.name,
                terminal_class_name=tc.name,
                reason="terminal_class_modified",
                change_type=tc.change_type,
            ))
            impact.rules.append(ImpactRule(
                type="terminal_class_modified",
                action="regenerate_test_cases",
                variable=change.name,
                terminal_class=tc.name,
                change_type=tc.change_type,
                description=f"Regenerate test cases that depend on {change.name}.{tc.name} ({tc.change_type})",
            ))

    if output_diff.has_changes:
        impact.rules.append(ImpactRule(
            type="output_changed",
            action="review_expected_outputs",
            description="Review and update expected outputs in test cases",
        ))
    return impact


def summarize(variable_diff: VariableDiff, output_diff: OutputDiff) -> Dict[str, object]:
    modified = [c.class_changes for c in variable_diff.modified]
    return {
        "variablesAdded": len(variable_diff.added),
        "variablesRemoved": len(variable_diff.removed),
        "variablesModified": len(variable_diff.modified),
        "variablesUnchanged": len(variable_diff.unchanged),
        "outputChanged": output_diff.has_changes,
        "terminalClassesAdded": sum(len(c.new.terminal_classes) for c in variable_diff.added)
        + sum(len(c.added) for c in modified),
        "terminalClassesRemoved": sum(len(c.old.terminal_classes) for c in variable_diff.removed)
        + sum(len(c.removed) for c in modified),
        "terminalClassesModified": sum(len(c.modified) for c in modified),
    }


class DiffEngine:
    """Compares classification-tree versions."""

    def compare(self, old: Optional[ClassificationTree], new: ClassificationTree) -> DiffReport:
        """
        Compare two tree versions.

        Args:
            old: Previous version, or None for a first version (everything added)
            new: Current version

        Returns:
            DiffReport with variable/output diffs, annotated merged tree and impact

        Raises:
            DiffComputationError: If either tree is structurally unusable
        """
        try:
            variable_diff = compare_variables(variable_map(old), variable_map(new))
            output_diff = compare_outputs(old.output if old else None, new.output)
            merged = build_merged_tree(old, new, variable_diff, output_diff)
            impact = analyze_impact(variable_diff, output_diff)
            summary = summarize(variable_diff, output_diff)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DiffComputationError(f"Failed to diff classification trees: {e}") from e

        logger.info(
            f"Diff: +{summary['variablesAdded']} -{summary['variablesRemoved']} "
            f"~{summary['variablesModified']} ={summary['variablesUnchanged']} variables, "
            f"{len(impact.rules)} impact rules"
        )
        return DiffReport(
            variable_diff=variable_diff,
            output_diff=output_diff,
            merged_tree=merged,
            impact=impact,
            summary=summary,
        )

    def first_version(self, new: ClassificationTree) -> DiffReport:
        """Diff against no prior version."""
        return self.compare(None, new)
