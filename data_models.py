"""
Core data models for the classification-tree test generation system.

All entities are frozen dataclasses: ingestion creates them, every later stage
(merge, diff, partitioning, generation) builds new instances instead of
mutating the ones it was handed.
"""
import json
import math
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple


class VariableType(Enum):
    """Declared type of a classification-tree variable."""
    RANGE = "range"
    NOMINAL = "nominal"
    ORDINAL = "ordinal"
    BOOLEAN = "boolean"
    ENUM = "enum"
    FLOAT = "float"
    STRING = "string"
    PERCENTAGE = "percentage"

    @classmethod
    def from_label(cls, raw: Optional[str]) -> "VariableType":
        """Map a schema type attribute (including legacy aliases) to a VariableType."""
        if not raw:
            return cls.STRING
        key = str(raw).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        return _TYPE_ALIASES.get(key, cls.STRING)

    @property
    def is_numeric(self) -> bool:
        return self in (VariableType.RANGE, VariableType.FLOAT, VariableType.PERCENTAGE)

    @property
    def is_integer(self) -> bool:
        return self is VariableType.RANGE


_TYPE_ALIASES = {
    "number": VariableType.RANGE,
    "integer": VariableType.RANGE,
    "int": VariableType.RANGE,
    "numeric": VariableType.RANGE,
    "decimal": VariableType.FLOAT,
    "double": VariableType.FLOAT,
    "real": VariableType.FLOAT,
    "bool": VariableType.BOOLEAN,
    "text": VariableType.STRING,
    "category": VariableType.NOMINAL,
}


class ChangeStatus(Enum):
    """Status of a node inside diff/merge output."""
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class SourceVersion(Enum):
    """Which tree version a diffed node came from."""
    OLD = "old"
    NEW = "new"
    BOTH = "both"


class TestCaseType(Enum):
    """Classification of a generated test case."""
    __test__ = False  # keep pytest from collecting this enum

    VALID = "Valid"
    INVALID = "Invalid"
    FAULT = "fault"


class FaultNodeType(Enum):
    TOP = "top"
    INTERMEDIATE = "intermediate"
    BASIC = "basic"
    PROPERTY = "property"


class FaultPatternType(Enum):
    INVALID_RANGE = "invalid-range"
    INVALID_MAPPING = "invalid-mapping"
    SAFETY_PROPERTY = "safety-property"


# ----------------------------------------------------------------------------
# Number helpers shared by the models and the parsers
# ----------------------------------------------------------------------------

def format_number(value: float) -> str:
    """Render a bound the way range strings are written ("0", "30.1", "inf")."""
    if value == math.inf:
        return "inf"
    if value == -math.inf:
        return "-inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


def encode_bound(value: Optional[float]) -> Any:
    """JSON-safe form of an interval bound (infinities become strings)."""
    if value is None:
        return None
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return value


def decode_bound(value: Any) -> Optional[float]:
    """Inverse of encode_bound."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("inf", "+inf", "infinity", "+infinity"):
            return math.inf
        if lowered in ("-inf", "-infinity"):
            return -math.inf
        return float(lowered)
    return value


# ----------------------------------------------------------------------------
# Classification tree
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class TerminalClass:
    """A leaf-level equivalence class of a variable."""
    id: str
    label: str
    min: Optional[float] = None
    max: Optional[float] = None
    values: Tuple[Any, ...] = ()
    valid: bool = True
    precision: Optional[int] = None  # decimal places stated in the source text

    # Only populated inside diff/merge output
    status: Optional[ChangeStatus] = None
    source_version: Optional[SourceVersion] = None
    change_type: Optional[str] = None
    previous: Optional["TerminalClass"] = None

    @property
    def has_interval(self) -> bool:
        return self.min is not None and self.max is not None

    def range_string(self) -> str:
        """Canonical textual form used to detect modifications between versions."""
        if self.has_interval:
            return f"{format_number(self.min)}-{format_number(self.max)}"
        if self.values:
            return ",".join(str(v) for v in self.values)
        return self.label

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "label": self.label,
            "min": encode_bound(self.min),
            "max": encode_bound(self.max),
            "values": list(self.values),
            "valid": self.valid,
        }
        if self.precision is not None:
            data["precision"] = self.precision
        if self.status is not None:
            data["status"] = self.status.value
        if self.source_version is not None:
            data["sourceVersion"] = self.source_version.value
        if self.change_type is not None:
            data["changeType"] = self.change_type
        if self.previous is not None:
            data["oldTerminalClass"] = self.previous.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TerminalClass":
        previous = data.get("oldTerminalClass")
        return cls(
            id=str(data["id"]),
            label=str(data.get("label", data["id"])),
            min=decode_bound(data.get("min")),
            max=decode_bound(data.get("max")),
            values=tuple(data.get("values") or ()),
            valid=bool(data.get("valid", True)),
            precision=data.get("precision"),
            status=ChangeStatus(data["status"]) if data.get("status") else None,
            source_version=SourceVersion(data["sourceVersion"]) if data.get("sourceVersion") else None,
            change_type=data.get("changeType"),
            previous=cls.from_dict(previous) if previous else None,
        )


@dataclass(frozen=True)
class Variable:
    """An input variable with its ordered terminal classes."""
    name: str
    type: VariableType = VariableType.STRING
    terminal_classes: Tuple[TerminalClass, ...] = ()
    parent_classification: Optional[str] = None

    status: Optional[ChangeStatus] = None
    source_version: Optional[SourceVersion] = None

    @property
    def is_numeric(self) -> bool:
        return self.type.is_numeric

    def get_class(self, label: str) -> Optional[TerminalClass]:
        for tc in self.terminal_classes:
            if tc.label == label:
                return tc
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "type": self.type.value,
            "terminalClasses": [tc.to_dict() for tc in self.terminal_classes],
            "parentClassification": self.parent_classification,
        }
        if self.status is not None:
            data["status"] = self.status.value
        if self.source_version is not None:
            data["sourceVersion"] = self.source_version.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Variable":
        return cls(
            name=str(data["name"]),
            type=VariableType.from_label(data.get("type")),
            terminal_classes=tuple(TerminalClass.from_dict(tc) for tc in data.get("terminalClasses") or ()),
            parent_classification=data.get("parentClassification"),
            status=ChangeStatus(data["status"]) if data.get("status") else None,
            source_version=SourceVersion(data["sourceVersion"]) if data.get("sourceVersion") else None,
        )


@dataclass(frozen=True)
class UseCase:
    id: str = "default"
    name: str = "Use Case"
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass(frozen=True)
class Output:
    """Expected-output classification; each terminal class carries its value in `values`."""
    name: str
    terminal_classes: Tuple[TerminalClass, ...] = ()
    status: Optional[ChangeStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "terminalClasses": [tc.to_dict() for tc in self.terminal_classes],
        }
        if self.status is not None:
            data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Output":
        return cls(
            name=str(data.get("name") or "output"),
            terminal_classes=tuple(TerminalClass.from_dict(tc) for tc in data.get("terminalClasses") or ()),
            status=ChangeStatus(data["status"]) if data.get("status") else None,
        )


@dataclass(frozen=True)
class ClassificationTree:
    """Canonical tree produced by ingestion and consumed by every later stage."""
    use_case: UseCase = field(default_factory=UseCase)
    variables: Tuple[Variable, ...] = ()
    output: Optional[Output] = None
    system: str = "System"

    def get_variable(self, name: str) -> Optional[Variable]:
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None

    def variable_names(self) -> List[str]:
        return [v.name for v in self.variables]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "useCase": self.use_case.to_dict(),
            "variables": [v.to_dict() for v in self.variables],
            "output": self.output.to_dict() if self.output else None,
            "system": self.system,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassificationTree":
        uc = data.get("useCase") or {}
        output = data.get("output")
        return cls(
            use_case=UseCase(
                id=str(uc.get("id", "default")),
                name=str(uc.get("name", "Use Case")),
                description=str(uc.get("description", "")),
            ),
            variables=tuple(Variable.from_dict(v) for v in data.get("variables") or ()),
            output=Output.from_dict(output) if output else None,
            system=str(data.get("system") or "System"),
        )


# ----------------------------------------------------------------------------
# Partitions and test cases
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class PartitionItem:
    """One representative of a terminal class (or a synthetic boundary bucket)."""
    id: str
    label: str
    sample: Any
    valid: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "sample": self.sample, "valid": self.valid}


@dataclass(frozen=True)
class Partition:
    name: str  # variable name
    items: Tuple[PartitionItem, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "items": [item.to_dict() for item in self.items]}


@dataclass(frozen=True)
class TestCase:
    """A generated test case. Never modified after the generator returns it."""
    __test__ = False

    id: str
    type: TestCaseType
    inputs: Dict[str, Any]
    expected: Dict[str, Any] = field(default_factory=dict)
    meta: Tuple[str, ...] = ()  # contributing terminal-class ids

    def canonical_key(self) -> str:
        """Key-sorted serialization of the inputs, used for deduplication."""
        return json.dumps(self.inputs, sort_keys=True, default=str)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "inputs": dict(self.inputs),
            "expected": dict(self.expected),
            "meta": list(self.meta),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestCase":
        return cls(
            id=str(data["id"]),
            type=TestCaseType(data.get("type", TestCaseType.VALID.value)),
            inputs=dict(data.get("inputs") or {}),
            expected=dict(data.get("expected") or {}),
            meta=tuple(data.get("meta") or ()),
        )


# ----------------------------------------------------------------------------
# Merge
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class MergeConflict:
    """Same label, different validity in the two merged trees. Never fatal."""
    variable: str
    label: str
    existing_valid: bool
    incoming_valid: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variable": self.variable,
            "label": self.label,
            "existingValid": self.existing_valid,
            "incomingValid": self.incoming_valid,
        }


@dataclass(frozen=True)
class MergeResult:
    merged: ClassificationTree
    warnings: Tuple[MergeConflict, ...] = ()


# ----------------------------------------------------------------------------
# Diff
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class TerminalClassChange:
    name: str  # terminal-class label
    status: ChangeStatus
    old: Optional[TerminalClass] = None
    new: Optional[TerminalClass] = None
    change_type: Optional[str] = None  # range_changed | validity_changed

    @property
    def current(self) -> TerminalClass:
        return self.new if self.new is not None else self.old

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "status": self.status.value}
        if self.old is not None:
            data["oldTerminalClass"] = self.old.to_dict()
        if self.new is not None:
            data["newTerminalClass"] = self.new.to_dict()
        if self.change_type:
            data["changeType"] = self.change_type
        return data


@dataclass
class ClassDiff:
    """Label-level diff of two terminal-class lists."""
    added: List[TerminalClassChange] = field(default_factory=list)
    removed: List[TerminalClassChange] = field(default_factory=list)
    modified: List[TerminalClassChange] = field(default_factory=list)
    unchanged: List[TerminalClassChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [c.to_dict() for c in self.added],
            "removed": [c.to_dict() for c in self.removed],
            "modified": [c.to_dict() for c in self.modified],
            "unchanged": [c.to_dict() for c in self.unchanged],
            "hasChanges": self.has_changes,
        }


@dataclass(frozen=True)
class VariableChange:
    name: str
    status: ChangeStatus
    old: Optional[Variable] = None
    new: Optional[Variable] = None
    class_changes: Optional[ClassDiff] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "status": self.status.value}
        if self.old is not None:
            data["oldVariable"] = self.old.to_dict()
        if self.new is not None:
            data["newVariable"] = self.new.to_dict()
        if self.class_changes is not None:
            data["terminalClassChanges"] = self.class_changes.to_dict()
        return data


@dataclass
class VariableDiff:
    added: List[VariableChange] = field(default_factory=list)
    removed: List[VariableChange] = field(default_factory=list)
    modified: List[VariableChange] = field(default_factory=list)
    unchanged: List[VariableChange] = field(default_factory=list)

    def status_of(self, name: str) -> Optional[ChangeStatus]:
        for bucket in (self.added, self.removed, self.modified, self.unchanged):
            for change in bucket:
                if change.name == name:
                    return change.status
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [c.to_dict() for c in self.added],
            "removed": [c.to_dict() for c in self.removed],
            "modified": [c.to_dict() for c in self.modified],
            "unchanged": [c.to_dict() for c in self.unchanged],
        }


@dataclass(frozen=True)
class OutputDiff:
    """Diff of the optional Output classification."""
    status: ChangeStatus
    class_changes: ClassDiff = field(default_factory=ClassDiff)
    old: Optional[Output] = None
    new: Optional[Output] = None

    @property
    def has_changes(self) -> bool:
        return self.status is not ChangeStatus.UNCHANGED

    def to_dict(self) -> Dict[str, Any]:
        data = self.class_changes.to_dict()
        data["status"] = self.status.value
        data["hasChanges"] = self.has_changes
        return data


@dataclass(frozen=True)
class ImpactTarget:
    """A set of test cases the impact analysis asks the caller to act on."""
    variable_name: str
    reason: str
    terminal_class_name: Optional[str] = None
    terminal_classes: Tuple[str, ...] = ()
    change_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"variableName": self.variable_name, "reason": self.reason}
        if self.terminal_class_name is not None:
            data["terminalClassName"] = self.terminal_class_name
        if self.terminal_classes:
            data["terminalClasses"] = list(self.terminal_classes)
        if self.change_type:
            data["changeType"] = self.change_type
        return data


@dataclass(frozen=True)
class ImpactRule:
    """One record per triggering change event."""
    type: str
    action: str
    description: str
    variable: Optional[str] = None
    terminal_class: Optional[str] = None
    change_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "action": self.action, "description": self.description}
        if self.variable is not None:
            data["variable"] = self.variable
        if self.terminal_class is not None:
            data["terminalClass"] = self.terminal_class
        if self.change_type:
            data["changeType"] = self.change_type
        return data


@dataclass
class Impact:
    test_cases_to_generate: List[ImpactTarget] = field(default_factory=list)
    test_cases_to_mark_obsolete: List[ImpactTarget] = field(default_factory=list)
    test_cases_to_regenerate: List[ImpactTarget] = field(default_factory=list)
    rules: List[ImpactRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testCasesToGenerate": [t.to_dict() for t in self.test_cases_to_generate],
            "testCasesToMarkObsolete": [t.to_dict() for t in self.test_cases_to_mark_obsolete],
            "testCasesToRegenerate": [t.to_dict() for t in self.test_cases_to_regenerate],
            "rules": [r.to_dict() for r in self.rules],
        }


@dataclass(frozen=True)
class MergedTree:
    """Single tree combining both versions, every node tagged with status/sourceVersion."""
    use_case: Optional[UseCase]
    variables: Tuple[Variable, ...] = ()
    output: Optional[Output] = None
    node_status_map: Dict[str, ChangeStatus] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "useCase": self.use_case.to_dict() if self.use_case else None,
            "variables": [v.to_dict() for v in self.variables],
            "output": self.output.to_dict() if self.output else None,
            "nodeStatusMap": {k: v.value for k, v in self.node_status_map.items()},
        }


@dataclass
class DiffReport:
    variable_diff: VariableDiff
    output_diff: OutputDiff
    merged_tree: MergedTree
    impact: Impact
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variableDiff": self.variable_diff.to_dict(),
            "outputDiff": self.output_diff.to_dict(),
            "mergedTree": self.merged_tree.to_dict(),
            "impact": self.impact.to_dict(),
            "summary": dict(self.summary),
        }


# ----------------------------------------------------------------------------
# Fault trees
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class FaultNode:
    id: str
    label: str
    type: FaultNodeType

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "type": self.type.value}


@dataclass(frozen=True)
class FaultEdge:
    source: str
    target: str

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.source, "to": self.target}


@dataclass(frozen=True)
class FaultTestCase:
    id: str
    description: str
    inputs: Dict[str, Any]
    triggers: Tuple[str, ...] = ()  # basic event first, top event last
    pattern: Optional[FaultPatternType] = None
    type: TestCaseType = TestCaseType.FAULT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
            "inputs": dict(self.inputs),
            "triggers": list(self.triggers),
            "pattern": self.pattern.value if self.pattern else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FaultTestCase":
        return cls(
            id=str(data["id"]),
            description=str(data.get("description", "")),
            inputs=dict(data.get("inputs") or {}),
            triggers=tuple(data.get("triggers") or ()),
            pattern=FaultPatternType(data["pattern"]) if data.get("pattern") else None,
        )


@dataclass
class FaultTreeResult:
    nodes: List[FaultNode] = field(default_factory=list)
    edges: List[FaultEdge] = field(default_factory=list)
    test_cases: List[FaultTestCase] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "testCases": [tc.to_dict() for tc in self.test_cases],
        }


# ----------------------------------------------------------------------------
# Syntax tests
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class SyntaxDefinition:
    """A regular-expression format declared for one input or output field."""
    name: str
    pattern: str
    description: str = ""
    type: str = ""
    length: str = ""


@dataclass(frozen=True)
class SyntaxTestCase:
    """One valid string for a definition and four malformed variants of it."""
    __test__ = False

    name: str
    regex: str
    valid: str
    invalid_value: str
    invalid_omission: str
    invalid_addition: str
    invalid_substitution: str
    description: str = ""
    type: str = ""
    length: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "regex": self.regex,
            "type": self.type,
            "length": self.length,
            "testCases": {
                "valid": self.valid,
                "invalidValue": self.invalid_value,
                "invalidOmission": self.invalid_omission,
                "invalidAddition": self.invalid_addition,
                "invalidSubstitution": self.invalid_substitution,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyntaxTestCase":
        cases = data.get("testCases") or {}
        return cls(
            name=str(data["name"]),
            regex=str(data.get("regex", "")),
            valid=cases.get("valid", ""),
            invalid_value=cases.get("invalidValue", ""),
            invalid_omission=cases.get("invalidOmission", ""),
            invalid_addition=cases.get("invalidAddition", ""),
            invalid_substitution=cases.get("invalidSubstitution", ""),
            description=data.get("description", ""),
            type=data.get("type", ""),
            length=data.get("length", ""),
        )


# ----------------------------------------------------------------------------
# Orchestrator output
# ----------------------------------------------------------------------------

@dataclass
class GenerationResult:
    """Everything one generation request produces."""
    tree: ClassificationTree
    diff: DiffReport
    partitions: List[Partition]
    display_partitions: List[Partition]
    test_cases: List[TestCase]
    incoming: Optional[ClassificationTree] = None  # parsed request tree before merging
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    notices: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "variables": [v.to_dict() for v in self.tree.variables],
            "tree": self.tree.to_dict(),
            "diff": self.diff.to_dict(),
            "partitions": [p.to_dict() for p in self.partitions],
            "displayPartitions": [p.to_dict() for p in self.display_partitions],
            "testCases": [tc.to_dict() for tc in self.test_cases],
            "warnings": list(self.warnings),
            "notices": list(self.notices),
            "stats": dict(self.stats),
        }


# ----------------------------------------------------------------------------
# Persistence records
# ----------------------------------------------------------------------------

@dataclass
class SystemRecord:
    """Latest stored tree snapshot for one system."""
    name: str
    tree: ClassificationTree
    use_case_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "useCaseName": self.use_case_name,
            "tree": self.tree.to_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class TestRun:
    """One stored generation request (kind is "cctm", "ecp", "fta" or "syntax")."""
    __test__ = False

    id: str
    kind: str
    test_cases: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    system_name: Optional[str] = None
    diff_summary: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "systemName": self.system_name,
            "testCases": list(self.test_cases),
            "stats": dict(self.stats),
            "diffSummary": self.diff_summary,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
