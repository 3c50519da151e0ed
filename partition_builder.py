"""
Partition construction: one representative sample per terminal class.

Two builders share the sampling rules. `PartitionBuilder.build` feeds the
generator and keeps every item. `PartitionBuilder.build_display` adds
underflow/overflow/None buckets for visualization and drops partitions left
with a single item.
"""
import logging
import math
from typing import Any, Iterable, List, Optional

from data_models import (
    Output,
    Partition,
    PartitionItem,
    TerminalClass,
    Variable,
    VariableType,
    format_number,
)

logger = logging.getLogger(__name__)

TRUE_LABELS = {"enabled", "yes", "true", "on"}
FALSE_LABELS = {"disabled", "no", "false", "off"}


def _finite(value: Optional[float]) -> bool:
    return value is not None and not math.isinf(value)


def display_bound(value: float) -> str:
    """Bound as shown in partition labels; infinities render as -∞ and ∞."""
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    return format_number(value)


def round_sample(value: float, var_type: VariableType, precision: Optional[int] = None):
    """Integers round half-up; floats keep the stated precision, minimum 2 places."""
    if var_type.is_integer:
        return int(math.floor(value + 0.5))
    return round(value, max(2, precision or 0))


def numeric_sample(tc: TerminalClass, var_type: VariableType):
    step = 1 if var_type.is_integer else 0.1
    lo, hi = tc.min, tc.max
    if _finite(lo) and _finite(hi):
        return round_sample((lo + hi) / 2, var_type, tc.precision)
    if _finite(lo):
        return round_sample(lo + step, var_type, tc.precision)
    if _finite(hi):
        return round_sample(hi - step, var_type, tc.precision)
    if tc.values:
        return tc.values[0]
    if lo is None and hi is None and var_type is VariableType.PERCENTAGE:
        return 50
    return 0


def boolean_sample(tc: TerminalClass) -> bool:
    for value in tc.values:
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        if lowered in TRUE_LABELS:
            return True
        if lowered in FALSE_LABELS:
            return False
    label = (tc.label or "").strip().lower()
    if label in TRUE_LABELS:
        return True
    if label in FALSE_LABELS:
        return False
    return tc.valid


def sample_value(tc: TerminalClass, var_type: VariableType) -> Any:
    """
    Representative value of a terminal class.

    Args:
        tc: Terminal class to sample
        var_type: Type of the owning variable

    Returns:
        Midpoint for intervals, first literal value (or the label) for
        discrete classes, a bool for boolean variables
    """
    if var_type is VariableType.BOOLEAN:
        return boolean_sample(tc)
    if var_type.is_numeric or tc.has_interval:
        return numeric_sample(tc, var_type if var_type.is_numeric else VariableType.FLOAT)
    if tc.values:
        return tc.values[0]
    return tc.label


def _numeric_output_values(output: Output) -> Optional[List[float]]:
    numbers = []
    for tc in output.terminal_classes:
        if not tc.values:
            return None
        try:
            number = float(tc.values[0])
        except (TypeError, ValueError):
            return None
        if not math.isfinite(number):
            return None
        numbers.append(number)
    return numbers or None


class PartitionBuilder:
    """Builds generation and display partitions from variables."""

    def build(self, variables: Iterable[Variable]) -> List[Partition]:
        """
        One partition per variable, one item per terminal class.

        Variables without terminal classes produce no partition.
        """
        partitions = []
        for variable in variables:
            if not variable.terminal_classes:
                logger.warning(f"Variable '{variable.name}' has no terminal classes; skipped")
                continue
            items = tuple(
                PartitionItem(id=tc.id, label=tc.label, sample=sample_value(tc, variable.type), valid=tc.valid)
                for tc in variable.terminal_classes
            )
            partitions.append(Partition(name=variable.name, items=items))
        logger.debug(f"Built {len(partitions)} generation partitions")
        return partitions

    def build_display(self, variables: Iterable[Variable], output: Optional[Output] = None) -> List[Partition]:
        """
        Display partitions with synthetic boundary buckets.

        Numeric variables are bracketed by underflow/overflow items below the
        smallest and above the largest declared bound; discrete variables and
        the output get a trailing None item. Partitions with one item or fewer
        are dropped.
        """
        partitions = []
        for variable in variables:
            if variable.is_numeric:
                items = self._numeric_display_items(variable)
            else:
                items = [
                    PartitionItem(id=tc.id, label=tc.label, sample=sample_value(tc, variable.type), valid=tc.valid)
                    for tc in variable.terminal_classes
                ]
                items.append(PartitionItem(id="none", label="None", sample=None, valid=False))
            partitions.append(Partition(name=variable.name, items=tuple(items)))

        if output is not None:
            partitions.append(Partition(name=output.name, items=tuple(self._output_items(output))))

        kept = [p for p in partitions if len(p.items) > 1]
        if len(kept) < len(partitions):
            logger.debug(f"Dropped {len(partitions) - len(kept)} single-item display partitions")
        return kept

    def _numeric_display_items(self, variable: Variable) -> List[PartitionItem]:
        var_type = variable.type
        step = 1 if var_type.is_integer else 0.1
        buckets = sorted((tc for tc in variable.terminal_classes if tc.has_interval), key=lambda tc: tc.min)
        others = [tc for tc in variable.terminal_classes if not tc.has_interval]

        items: List[PartitionItem] = []
        if buckets and _finite(buckets[0].min):
            first_min = buckets[0].min
            items.append(PartitionItem(
                id="underflow",
                label=f"(-∞, {display_bound(first_min)})",
                sample=round_sample(first_min - step, var_type, buckets[0].precision),
                valid=False,
            ))
        for tc in buckets:
            if tc.min == tc.max:
                label = display_bound(tc.min)
            else:
                label = f"({display_bound(tc.min)}, {display_bound(tc.max)})"
            items.append(PartitionItem(id=tc.id, label=label, sample=sample_value(tc, var_type), valid=tc.valid))
        last_max = max((tc.max for tc in buckets), default=None)
        if _finite(last_max):
            items.append(PartitionItem(
                id="overflow",
                label=f"({display_bound(last_max)}, ∞)",
                sample=round_sample(last_max + step, var_type, buckets[-1].precision),
                valid=False,
            ))
        for tc in others:
            items.append(PartitionItem(id=tc.id, label=tc.label, sample=sample_value(tc, var_type), valid=tc.valid))
        return items

    def _output_items(self, output: Output) -> List[PartitionItem]:
        numbers = _numeric_output_values(output)
        items: List[PartitionItem] = []
        if numbers is not None:
            # Numeric outputs collapse into a single min..max item
            low = min(range(len(numbers)), key=lambda i: numbers[i])
            high = max(range(len(numbers)), key=lambda i: numbers[i])
            lo_tc, hi_tc = output.terminal_classes[low], output.terminal_classes[high]
            if numbers[low] == numbers[high]:
                label = format_number(numbers[low])
            else:
                label = f"({format_number(numbers[low])}, {format_number(numbers[high])})"
            items.append(PartitionItem(id=f"{lo_tc.id}-{hi_tc.id}", label=label, sample=numbers[low]))
        else:
            for tc in output.terminal_classes:
                value = tc.values[0] if tc.values else tc.label
                items.append(PartitionItem(id=tc.id, label=str(value), sample=value))
        items.append(PartitionItem(id="none", label="None", sample=None, valid=False))
        return items
