"""
Tree building: normalization of ingested trees and lookups used by merge/diff.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from data_models import ClassificationTree, TerminalClass, Variable

logger = logging.getLogger(__name__)

TreeLike = Union[ClassificationTree, Dict[str, Any]]


class TreeBuilder:
    """Normalizes ingested variables into the canonical tree shape."""

    def build(self, tree: TreeLike) -> ClassificationTree:
        """
        Normalize a parsed tree or a stored snapshot.

        Duplicate variable names are folded into the first occurrence (classes
        unioned by label) and terminal-class ids are made unique per variable.

        Args:
            tree: ClassificationTree or its to_dict() form

        Returns:
            New ClassificationTree; the input is left untouched
        """
        tree = self.coerce(tree)
        variables: Dict[str, Variable] = {}
        for variable in tree.variables:
            if variable.name in variables:
                logger.warning(f"Duplicate variable '{variable.name}' folded into first occurrence")
                variables[variable.name] = self._fold(variables[variable.name], variable)
            else:
                variables[variable.name] = variable

        normalized = tuple(self._normalize_variable(v) for v in variables.values())
        result = ClassificationTree(
            use_case=tree.use_case,
            variables=normalized,
            output=tree.output,
            system=tree.system,
        )
        stats = tree_stats(result)
        logger.debug(
            f"Normalized tree: {stats['variables']} variables, {stats['terminalClasses']} terminal classes "
            f"({stats['invalidClasses']} invalid)"
        )
        return result

    @staticmethod
    def coerce(tree: Optional[TreeLike]) -> Optional[ClassificationTree]:
        """Accept either a ClassificationTree or a serialized snapshot."""
        if tree is None or isinstance(tree, ClassificationTree):
            return tree
        return ClassificationTree.from_dict(tree)

    def _fold(self, first: Variable, other: Variable) -> Variable:
        labels = {tc.label for tc in first.terminal_classes}
        extra = tuple(tc for tc in other.terminal_classes if tc.label not in labels)
        return Variable(
            name=first.name,
            type=first.type,
            terminal_classes=first.terminal_classes + extra,
            parent_classification=first.parent_classification or other.parent_classification,
        )

    def _normalize_variable(self, variable: Variable) -> Variable:
        seen = set()
        classes: List[TerminalClass] = []
        for idx, tc in enumerate(variable.terminal_classes):
            class_id = tc.id or f"{variable.name}-{tc.label}-{idx}"
            if class_id in seen:
                class_id = f"{class_id}-{idx}"
            seen.add(class_id)
            if class_id == tc.id:
                classes.append(tc)
            else:
                classes.append(TerminalClass(
                    id=class_id,
                    label=tc.label,
                    min=tc.min,
                    max=tc.max,
                    values=tc.values,
                    valid=tc.valid,
                    precision=tc.precision,
                ))
        return Variable(
            name=variable.name,
            type=variable.type,
            terminal_classes=tuple(classes),
            parent_classification=variable.parent_classification,
        )


def variable_map(tree: Optional[ClassificationTree]) -> Dict[str, Variable]:
    """Variables keyed by name, in declaration order."""
    if tree is None:
        return {}
    return {v.name: v for v in tree.variables}


def class_map(classes) -> Dict[str, TerminalClass]:
    """Terminal classes keyed by label, in declaration order."""
    return {tc.label: tc for tc in classes}


def group_by_classification(tree: ClassificationTree) -> Dict[Optional[str], List[str]]:
    """Variable names grouped under their parent classification label (None = directly under the root)."""
    groups: Dict[Optional[str], List[str]] = {}
    for variable in tree.variables:
        groups.setdefault(variable.parent_classification, []).append(variable.name)
    return groups


def tree_stats(tree: ClassificationTree) -> Dict[str, int]:
    """Variable and terminal-class counts for logging and summaries."""
    classes = [tc for v in tree.variables for tc in v.terminal_classes]
    return {
        "variables": len(tree.variables),
        "terminalClasses": len(classes),
        "invalidClasses": sum(1 for tc in classes if not tc.valid),
    }
