"""
Fault-tree scenario extraction.

Parses fault-pattern XML into a node/edge graph and synthesizes one test case
per triggering basic event. Three pattern kinds are understood:

- invalid-range: each basic event is an out-of-range value for one variable
- invalid-mapping: each basic event is bound to the intermediate "stage" node
  its condition maps to through the pattern's <mappings> section
- safety-property: each basic event is tried under its structural parent

Label parsing never fails: text that yields no condition becomes a single
generic input keyed by the raw text.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from data_models import (
    FaultEdge,
    FaultNode,
    FaultNodeType,
    FaultPatternType,
    FaultTestCase,
    FaultTreeResult,
    TerminalClass,
    VariableType,
)
from errors import ParseError
from partition_builder import numeric_sample
from range_parser import decimal_places
from xml_ingestion import children, first_child, load_document, local_name

logger = logging.getLogger(__name__)

_NUM = r"-?\d+(?:\.\d+)?"
_COMPARISON_RE = re.compile(rf"([A-Za-z_][\w.]*)\s*(<=|>=|!=|==|=|<|>)\s*({_NUM})")
_REVERSED_RE = re.compile(rf"({_NUM})\s*(<=|>=|<|>)\s*([A-Za-z_][\w.]*)")
_ASSIGNMENT_RE = re.compile(r"^\s*([A-Za-z_][\w .]*?)\s*(==|=|!=)\s*(.+?)\s*$")
_FLIP = {"<": ">", "<=": ">=", ">": "<", ">=": "<="}

EVENT_TAGS = ("intermediateEvent", "basicEvent", "property")


@dataclass(frozen=True)
class Constraint:
    variable: str
    op: str
    value: float
    token: str


@dataclass
class _Event:
    id: str
    label: str
    kind: FaultNodeType
    element: Any
    parent: Optional["_Event"] = None
    children: List["_Event"] = field(default_factory=list)


@dataclass(frozen=True)
class Mapping:
    name: str
    condition: str
    stage: str
    constraints: Tuple[Constraint, ...]


# ----------------------------------------------------------------------------
# Condition text
# ----------------------------------------------------------------------------

def extract_constraints(text: str) -> List[Constraint]:
    """All ``VAR op N`` (or ``N op VAR``) comparisons found in `text`."""
    found = []
    for match in _COMPARISON_RE.finditer(text or ""):
        op = "==" if match.group(2) == "=" else match.group(2)
        found.append(Constraint(match.group(1), op, float(match.group(3)), match.group(3)))
    for match in _REVERSED_RE.finditer(text or ""):
        found.append(Constraint(match.group(3), _FLIP[match.group(2)], float(match.group(1)), match.group(1)))
    return found


@dataclass(frozen=True)
class Bounds:
    """Interval over one variable; open sides exclude their endpoint."""
    lo: float = -math.inf
    hi: float = math.inf
    lo_open: bool = True
    hi_open: bool = True

    def is_empty(self) -> bool:
        return self.lo > self.hi or (self.lo == self.hi and (self.lo_open or self.hi_open))

    def meets(self, other: "Bounds") -> bool:
        if self.is_empty() or other.is_empty():
            return False
        if self.hi < other.lo or other.hi < self.lo:
            return False
        if self.hi == other.lo and (self.hi_open or other.lo_open):
            return False
        if other.hi == self.lo and (other.hi_open or self.lo_open):
            return False
        return True


def constraint_range(constraints: List[Constraint]) -> Bounds:
    """Interval satisfying every constraint; `<` and `>` give open sides."""
    lo, hi = -math.inf, math.inf
    lo_open = hi_open = True
    for c in constraints:
        if c.op in (">", ">=", "=="):
            strict = c.op == ">"
            if c.value > lo or (c.value == lo and strict):
                lo, lo_open = c.value, strict
        if c.op in ("<", "<=", "=="):
            strict = c.op == "<"
            if c.value < hi or (c.value == hi and strict):
                hi, hi_open = c.value, strict
    return Bounds(lo, hi, lo_open, hi_open)


def ranges_by_variable(constraints: List[Constraint]) -> Dict[str, Bounds]:
    grouped: Dict[str, List[Constraint]] = {}
    for c in constraints:
        if c.op == "!=":
            continue
        grouped.setdefault(c.variable.lower(), []).append(c)
    return {name: constraint_range(cs) for name, cs in grouped.items()}


def _step(token: str) -> float:
    return 0.1 if "." in token else 1


def _as_number(value: float, token: str):
    places = decimal_places(token) or 0
    if places == 0:
        return int(round(value))
    return round(value, places)


def _violating_value(constraint: Constraint):
    """Concrete value that satisfies a single comparison."""
    step = _step(constraint.token)
    value = constraint.value
    if constraint.op == "<":
        value -= step
    elif constraint.op == ">":
        value += step
    elif constraint.op == "!=":
        value += step
    return _as_number(value, constraint.token)


def _literal(text: str) -> Any:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if re.fullmatch(_NUM, text.strip()):
        return _as_number(float(text), text.strip())
    return text.strip().strip("'\"")


def parse_event_label(label: str) -> Dict[str, Any]:
    """
    Inputs implied by a legacy free-text basic-event label.

    "GFR >= 90" -> {"GFR": 90}; "Mode = OFF" -> {"Mode": "OFF"};
    "60 <= GFR < 90" -> {"GFR": 75}; anything else -> {label: True}.
    """
    constraints = extract_constraints(label)
    if constraints:
        by_var: Dict[str, List[Constraint]] = {}
        for c in constraints:
            by_var.setdefault(c.variable, []).append(c)
        inputs = {}
        for name, cs in by_var.items():
            if len(cs) == 1:
                inputs[name] = _violating_value(cs[0])
                continue
            bounds = constraint_range(cs)
            token = max((c.token for c in cs), key=lambda t: decimal_places(t) or 0)
            if math.isinf(bounds.lo) or math.isinf(bounds.hi):
                inputs[name] = _violating_value(cs[-1])
            else:
                inputs[name] = _as_number((bounds.lo + bounds.hi) / 2, token)
        return inputs

    match = _ASSIGNMENT_RE.match(label or "")
    if match:
        name, op, raw = match.groups()
        value = _literal(raw)
        if op == "!=":
            value = f"not {raw.strip()}"
        return {name.strip(): value}

    return {(label or "").strip() or "raw_text": True}


def parse_structured_event(element) -> Optional[Dict[str, Any]]:
    """
    Inputs from the attribute form ``<basicEvent variable="Age" min="121"/>``
    or ``<basicEvent var="Mode" value="OFF"/>``; None when attributes are absent.
    """
    name = element.get("variable") or element.get("var")
    if not name:
        return None
    if element.get("value") is not None:
        return {name: _literal(element.get("value"))}
    lo_text, hi_text = element.get("min"), element.get("max")
    if lo_text is None and hi_text is None:
        return None
    try:
        lo = float(lo_text) if lo_text not in (None, "") else None
        hi = float(hi_text) if hi_text not in (None, "") else None
    except ValueError:
        logger.warning(f"Non-numeric bounds on basic event for '{name}': min={lo_text!r} max={hi_text!r}")
        return None
    places = max(decimal_places(lo_text or "") or 0, decimal_places(hi_text or "") or 0)
    var_type = VariableType.FLOAT if places else VariableType.RANGE
    tc = TerminalClass(id=name, label=name, min=lo, max=hi, precision=places or None)
    return {name: numeric_sample(tc, var_type)}


def parse_mapping(element) -> Mapping:
    condition = element.get("condition") or (element.text or "").strip()
    left, _, right = condition.partition("->")
    stage = right.strip() or element.get("stage") or element.get("output") or ""
    return Mapping(
        name=element.get("name") or stage,
        condition=condition,
        stage=stage,
        constraints=tuple(extract_constraints(left)),
    )


def conditions_overlap(a: List[Constraint], b: List[Constraint]) -> bool:
    """Same variable (case-insensitive) with intersecting ranges, open ends respected."""
    ranges_a, ranges_b = ranges_by_variable(a), ranges_by_variable(b)
    return any(name in ranges_b and bounds.meets(ranges_b[name]) for name, bounds in ranges_a.items())


# ----------------------------------------------------------------------------
# Extractor
# ----------------------------------------------------------------------------

class FaultTreeExtractor:
    """Builds the fault graph and its test cases from fault-pattern XML."""

    def __init__(self):
        self._counter = 0
        self._nodes: Dict[str, FaultNode] = {}
        self._edges: List[FaultEdge] = []

    def _next_id(self, kind: FaultNodeType) -> str:
        self._counter += 1
        return f"{kind.value}-{self._counter}"

    def _register(self, element, kind: FaultNodeType, parent: Optional[_Event]) -> _Event:
        label = element.get("label") or element.get("name") or (element.text or "").strip()
        event = _Event(id=element.get("id") or self._next_id(kind), label=label, kind=kind, element=element, parent=parent)
        # Nodes collapse by label; the first occurrence keeps its id
        key = label or event.id
        if key not in self._nodes:
            self._nodes[key] = FaultNode(id=event.id, label=label, type=kind)
        if parent is not None:
            self._edges.append(FaultEdge(source=parent.id, target=event.id))
            parent.children.append(event)
        return event

    def _walk(self, element, parent: _Event, basics: List[_Event], intermediates: List[_Event]) -> None:
        for child in element:
            if not isinstance(child.tag, str):
                continue
            name = local_name(child)
            if name == "intermediateEvent":
                event = self._register(child, FaultNodeType.INTERMEDIATE, parent)
                intermediates.append(event)
                self._walk(child, event, basics, intermediates)
            elif name == "basicEvent":
                basics.append(self._register(child, FaultNodeType.BASIC, parent))
            elif name == "property":
                self._register(child, FaultNodeType.PROPERTY, parent)

    def _patterns(self, root) -> List:
        name = local_name(root)
        if name == "pattern":
            return [root]
        if name in ("faultPatterns", "faultTree"):
            patterns = children(root, "pattern")
            if patterns:
                return patterns
            if first_child(root, "topEvent") is not None or first_child(root, "mappings") is not None:
                return [root]
            return []
        if first_child(root, "topEvent") is not None:
            return [root]
        raise ParseError(
            "Unrecognized fault tree format",
            detail=f"root element <{name}> is not faultTree, faultPatterns or pattern",
        )

    @staticmethod
    def classify(pattern, mappings: List[Mapping], basics: List[_Event]) -> FaultPatternType:
        """Explicit type attribute, else structural fallback."""
        declared = (pattern.get("type") or "").strip().lower()
        for kind in FaultPatternType:
            if kind.value == declared:
                return kind
        if mappings:
            return FaultPatternType.INVALID_MAPPING
        for event in basics:
            if parse_structured_event(event.element) is not None or extract_constraints(event.label):
                return FaultPatternType.INVALID_RANGE
        return FaultPatternType.SAFETY_PROPERTY

    @staticmethod
    def _ancestors(event: _Event) -> List[_Event]:
        chain = []
        current = event.parent
        while current is not None:
            chain.append(current)
            current = current.parent
        return chain

    def bind_stage(self, event: _Event, mappings: List[Mapping], intermediates: List[_Event]) -> Optional[_Event]:
        """Intermediate node an invalid-mapping basic event belongs to, or None when nothing matches."""
        event_constraints = extract_constraints(event.label)
        structured = parse_structured_event(event.element)
        if structured:
            for name, value in structured.items():
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    event_constraints.append(Constraint(name, "==", float(value), str(value)))

        for mapping in mappings:
            if not mapping.stage or not conditions_overlap(event_constraints, list(mapping.constraints)):
                continue
            stage = mapping.stage.lower()
            preferred = f"incorrect {stage} stage"
            exact = [n for n in intermediates if n.label.lower() == preferred]
            if exact:
                return exact[0]
            loose = [n for n in intermediates if stage in n.label.lower()]
            if loose:
                return loose[0]
        return None

    def parse(self, xml_text) -> FaultTreeResult:
        """
        Extract the fault graph and test cases.

        Args:
            xml_text: Fault-pattern XML as str or bytes

        Returns:
            FaultTreeResult with nodes, edges and one test case per basic event

        Raises:
            ParseError: If the XML is malformed or its root is unknown
        """
        self._counter = 0
        self._nodes = {}
        self._edges = []

        root = load_document(xml_text)
        cases: List[FaultTestCase] = []
        for pattern in self._patterns(root):
            basics: List[_Event] = []
            intermediates: List[_Event] = []
            top_el = first_child(pattern, "topEvent")
            top = None
            if top_el is not None:
                top = self._register(top_el, FaultNodeType.TOP, None)
                self._walk(top_el, top, basics, intermediates)
            for prop in children(pattern, "property"):
                self._register(prop, FaultNodeType.PROPERTY, top)

            mappings_el = first_child(pattern, "mappings")
            mappings = [parse_mapping(m) for m in children(mappings_el, "mapping")] if mappings_el is not None else []
            kind = self.classify(pattern, mappings, basics)
            logger.info(
                f"Fault pattern '{pattern.get('name') or kind.value}': {kind.value}, "
                f"{len(basics)} basic events, {len(mappings)} mappings"
            )

            for event in basics:
                inputs = parse_structured_event(event.element) or parse_event_label(event.label)
                chain = self._ancestors(event)
                if kind is FaultPatternType.INVALID_MAPPING:
                    stage = self.bind_stage(event, mappings, intermediates)
                    if stage is None:
                        logger.debug(f"No mapping stage for '{event.label}'; using structural parent")
                    else:
                        chain = [stage] + self._ancestors(stage)
                elif kind is FaultPatternType.SAFETY_PROPERTY:
                    chain = chain[:1] + ([chain[-1]] if len(chain) > 1 else [])
                cases.append(FaultTestCase(
                    id=f"FT-{len(cases) + 1:03d}",
                    description=event.label or event.id,
                    inputs=inputs,
                    triggers=tuple([event.id] + [n.id for n in chain]),
                    pattern=kind,
                ))

        result = FaultTreeResult(nodes=list(self._nodes.values()), edges=list(self._edges), test_cases=cases)
        logger.info(f"Fault tree: {len(result.nodes)} nodes, {len(result.edges)} edges, {len(cases)} test cases")
        return result


def parse_fault_tree(xml_text) -> FaultTreeResult:
    return FaultTreeExtractor().parse(xml_text)
