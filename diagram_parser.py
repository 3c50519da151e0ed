"""
Diagram (draw.io / diagrams.net) variant of classification-tree ingestion.

The diagram is a flat list of cells. Hierarchy is rebuilt from the edges:
the root is the parentless vertex highest on the page, variables are
thick-bordered rectangles, terminal classes are ellipses and the remaining
rectangles are classification groups.
"""
import base64
import html
import logging
import re
import zlib
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import unquote

from lxml import etree

from data_models import ClassificationTree, Output, TerminalClass, UseCase, Variable, VariableType
from errors import ParseError
from range_parser import ParsedRange, looks_invalid, parse_range_string
from xml_ingestion import children, first_child, local_name, xml_parser

logger = logging.getLogger(__name__)

_LOOSE_RANGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*-\s*(\d+(?:\.\d+)?|max)", re.IGNORECASE)
_LOOSE_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*>")


@dataclass
class DiagramNode:
    id: str
    value: str
    style: str
    kind: str
    x: float = 0.0
    y: float = 0.0
    parent: Optional["DiagramNode"] = None
    children: List["DiagramNode"] = field(default_factory=list)


def _node_kind(style: str) -> str:
    if "ellipse" in style:
        return "terminal"
    if "rounded=0" in style and "strokeWidth=2" in style:
        return "variable"
    if "rounded=0" in style:
        return "classification"
    return "unknown"


def _clean_value(raw: str) -> str:
    # Cell values may carry HTML markup and double-escaped entities
    text = html.unescape(raw or "")
    if _TAG_RE.search(text):
        text = html.unescape(_TAG_RE.sub(" ", text))
    return " ".join(text.split())


def _inflate(payload: str):
    """Decode a compressed ``<diagram>`` payload (base64 + raw deflate + URL encoding)."""
    try:
        raw = zlib.decompress(base64.b64decode(payload), -15)
        return etree.fromstring(unquote(raw.decode("utf-8")).encode("utf-8"), xml_parser())
    except (ValueError, zlib.error, etree.XMLSyntaxError) as e:
        raise ParseError("Compressed diagram payload could not be decoded", detail=str(e)) from e


def _graph_model(root):
    if local_name(root) == "mxGraphModel":
        return root
    diagram = first_child(root, "diagram")
    if diagram is None:
        raise ParseError("No diagram found in mxfile")
    model = first_child(diagram, "mxGraphModel")
    if model is None and (diagram.text or "").strip():
        model = _inflate(diagram.text.strip())
    if model is None:
        raise ParseError("No mxGraphModel found in diagram")
    return model


def _collect(model) -> Dict[str, DiagramNode]:
    cells_root = first_child(model, "root")
    cells = children(cells_root, "mxCell") if cells_root is not None else []
    if not cells:
        raise ParseError("No cells found in mxGraphModel")

    nodes: Dict[str, DiagramNode] = {}
    edges = []
    for cell in cells:
        cell_id = cell.get("id")
        if not cell_id:
            continue
        source, target = cell.get("source"), cell.get("target")
        value = cell.get("value") or ""
        if cell.get("edge") in ("1", "true") or (source and target):
            if source and target:
                edges.append((source, target))
            continue
        if cell.get("vertex") in ("1", "true") or value:
            geometry = first_child(cell, "mxGeometry")
            style = cell.get("style") or ""
            nodes[cell_id] = DiagramNode(
                id=cell_id,
                value=_clean_value(value),
                style=style,
                kind=_node_kind(style),
                x=float(geometry.get("x", 0)) if geometry is not None else 0.0,
                y=float(geometry.get("y", 0)) if geometry is not None else 0.0,
            )

    for source, target in edges:
        parent, child = nodes.get(source), nodes.get(target)
        if parent is not None and child is not None:
            child.parent = parent
            if child not in parent.children:
                parent.children.append(child)

    logger.debug(f"Diagram graph: {len(nodes)} vertices, {len(edges)} edges")
    return nodes


def find_root(nodes: Dict[str, DiagramNode]) -> DiagramNode:
    """Parentless node with the smallest vertical position; topmost node as a last resort."""
    if not nodes:
        raise ParseError("No root node (use case) found", detail="diagram has no vertices")
    orphans = [n for n in nodes.values() if n.parent is None]
    candidates = orphans or list(nodes.values())
    return min(candidates, key=lambda n: n.y)


def _parse_label(text: str) -> Optional[ParsedRange]:
    """Diagram labels are free text ("0-30 km/h", "50 max"), so numbers are searched, not matched."""
    if text.startswith("<") or text.startswith(">") or "inf" in text.lower():
        return parse_range_string(text)
    match = _LOOSE_RANGE_RE.search(text)
    if match:
        upper = match.group(2)
        return ParsedRange(
            min=float(match.group(1)),
            max=float("inf") if upper.lower() == "max" else float(upper),
        )
    match = _LOOSE_NUMBER_RE.search(text)
    if match:
        num = float(match.group(1))
        return ParsedRange(min=num, max=num)
    return parse_range_string(text)


def infer_type(classes: List[TerminalClass]) -> VariableType:
    """Guess a variable type from its terminal-class labels."""
    text = " ".join(tc.label for tc in classes).lower()
    if "true" in text or "false" in text:
        return VariableType.BOOLEAN
    if re.search(r"\d", text):
        return VariableType.FLOAT
    if "cc_" in text or "active" in text or "passive" in text:
        return VariableType.ENUM
    return VariableType.STRING


def _terminal_classes(var_node: DiagramNode) -> List[TerminalClass]:
    classes = []
    terminals = [c for c in var_node.children if c.kind == "terminal"]
    for idx, tc in enumerate(terminals):
        parsed = _parse_label(tc.value)
        invalid = looks_invalid(tc.value, tc.value) or (parsed is not None and not parsed.valid)
        classes.append(TerminalClass(
            id=f"{var_node.value}-{tc.value}-{idx}",
            label=tc.value,
            min=parsed.min if parsed else None,
            max=parsed.max if parsed else None,
            values=parsed.values if parsed else ((tc.value,) if tc.value else ()),
            valid=not invalid,
            precision=parsed.precision if parsed else None,
        ))
    return classes


def _variable_names(node: DiagramNode) -> List[str]:
    if node.kind == "variable":
        return [node.value]
    names = []
    for child in node.children:
        if child.kind in ("variable", "classification"):
            names.extend(_variable_names(child))
    return names


def _group_variables(group: DiagramNode, parent_label: str, out: List[dict]) -> None:
    for child in group.children:
        if child.kind == "variable" and child.value:
            classes = _terminal_classes(child)
            if classes:
                out.append({"name": child.value, "classes": classes, "parent": parent_label})
        elif child.kind == "classification":
            _group_variables(child, child.value, out)


def parse_diagram(root) -> ClassificationTree:
    """
    Rebuild a ClassificationTree from a diagram document.

    Sibling classification groups with the same set of child variables are
    collapsed into one group named "A/B/C".

    Args:
        root: ``<mxfile>`` or ``<mxGraphModel>`` element

    Returns:
        ClassificationTree
    """
    nodes = _collect(_graph_model(root))
    root_node = find_root(nodes)
    use_case = UseCase(id="UC_Default", name=root_node.value or "Use Case", description="")

    direct: List[dict] = []
    groups: Dict[str, List[DiagramNode]] = {}
    for child in root_node.children:
        if child.kind == "variable" and child.value:
            classes = _terminal_classes(child)
            if classes:
                direct.append({"name": child.value, "classes": classes, "parent": None})
        elif child.kind == "classification":
            names = _variable_names(child)
            if names:
                groups.setdefault(",".join(sorted(names)), []).append(child)

    collected = list(direct)
    for members in groups.values():
        merged_label = "/".join(m.value for m in members)
        grouped: List[dict] = []
        _group_variables(members[0], merged_label, grouped)
        collected.extend(grouped)

    # Same variable under several groups: union classes by label, join group labels
    by_name: Dict[str, dict] = {}
    order: List[str] = []
    for entry in collected:
        existing = by_name.get(entry["name"])
        if existing is None:
            by_name[entry["name"]] = {"name": entry["name"], "classes": list(entry["classes"]), "parent": entry["parent"]}
            order.append(entry["name"])
            continue
        labels = {tc.label for tc in existing["classes"]}
        existing["classes"].extend(tc for tc in entry["classes"] if tc.label not in labels)
        if entry["parent"]:
            if not existing["parent"]:
                existing["parent"] = entry["parent"]
            elif entry["parent"] not in existing["parent"]:
                existing["parent"] = f"{existing['parent']}/{entry['parent']}"

    variables = tuple(
        Variable(
            name=name,
            type=infer_type(by_name[name]["classes"]),
            terminal_classes=tuple(by_name[name]["classes"]),
            parent_classification=by_name[name]["parent"],
        )
        for name in order
    )

    output = None
    output_nodes = [
        n for n in root_node.children
        if n.kind == "terminal" and not any(name in n.value for name in order)
    ]
    if output_nodes:
        output = Output(
            name="controllerAction",
            terminal_classes=tuple(
                TerminalClass(id=f"output-{n.value}-{i}", label=n.value, values=(n.value,))
                for i, n in enumerate(output_nodes)
            ),
        )

    logger.info(f"Diagram root '{use_case.name}': {len(variables)} variables, {len(groups)} classification groups")
    return ClassificationTree(use_case=use_case, variables=variables, output=output, system=use_case.name)
