"""
XML ingestion for classification trees.

Four document shapes are supported, each with its own parser selected up front
by looking at the root element:

- ``<classificationTrees>`` with one or more ``<treeVersion>`` children (latest wins)
- ``<classificationTree>`` holding a single ``<useCase>``
- ``<DataDictionary>`` legacy dictionary of ``<Variable>`` entries
- ``<mxfile>`` / ``<mxGraphModel>`` diagrams (see diagram_parser)
"""
import logging
from typing import Callable, Dict, List, Optional

from lxml import etree

from data_models import (
    ClassificationTree,
    Output,
    TerminalClass,
    UseCase,
    Variable,
    VariableType,
)
from errors import ParseError
from range_parser import build_terminal_class, decode_bound_text

logger = logging.getLogger(__name__)


def xml_parser() -> etree.XMLParser:
    """Parser that never resolves entities or touches the network."""
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True, huge_tree=False)


def local_name(element) -> str:
    """Tag name without namespace."""
    return etree.QName(element).localname


def children(element, name: str) -> List:
    """Direct child elements with the given local name, in document order."""
    return [c for c in element if isinstance(c.tag, str) and local_name(c) == name]


def first_child(element, name: str):
    found = children(element, name)
    return found[0] if found else None


def field_value(element, name: str, default: Optional[str] = None) -> Optional[str]:
    """Read `name` from an attribute, falling back to a child element's text."""
    value = element.get(name)
    if value is not None:
        return value
    child = first_child(element, name)
    if child is not None and child.text is not None:
        return child.text.strip()
    return default


def element_text(element) -> str:
    """Direct text content of an element, falling back to its `value` attribute."""
    text = (element.text or "").strip()
    if text:
        return text
    return element.get("value", "")


def load_document(xml_text) -> etree._Element:
    """
    Parse raw XML text or bytes into a root element.

    Raises:
        ParseError: If the document is empty or not well-formed
    """
    if xml_text is None or (isinstance(xml_text, (str, bytes)) and not xml_text.strip()):
        raise ParseError("Empty XML document")
    data = xml_text.encode("utf-8") if isinstance(xml_text, str) else xml_text
    try:
        return etree.fromstring(data, xml_parser())
    except etree.XMLSyntaxError as e:
        raise ParseError("Malformed XML document", detail=str(e)) from e


# ----------------------------------------------------------------------------
# Element-tree schemas
# ----------------------------------------------------------------------------

def _parse_use_case(uc_el) -> ClassificationTree:
    use_case = UseCase(
        id=field_value(uc_el, "id") or "default",
        name=field_value(uc_el, "name") or "Use Case",
        description=field_value(uc_el, "description") or "",
    )

    variables = []
    for idx, var_el in enumerate(children(uc_el, "variable")):
        name = field_value(var_el, "name") or f"var_{idx}"
        var_type = VariableType.from_label(field_value(var_el, "type"))
        classes = []
        for i, tc_el in enumerate(children(var_el, "terminalClass")):
            label = tc_el.get("name") or f"tc_{i}"
            classes.append(build_terminal_class(f"{name}-{label}-{i}", label, element_text(tc_el)))
        variables.append(Variable(
            name=name,
            type=var_type,
            terminal_classes=tuple(classes),
            parent_classification=var_el.get("classification") or var_el.get("parentClassification"),
        ))

    output = None
    out_el = first_child(uc_el, "output")
    if out_el is not None:
        out_name = field_value(out_el, "name") or "output"
        out_classes = []
        for i, tc_el in enumerate(children(out_el, "terminalClass")):
            label = tc_el.get("name") or f"tc_{i}"
            out_classes.append(TerminalClass(
                id=f"{out_name}-{label}-{i}",
                label=label,
                values=(element_text(tc_el),),
            ))
        output = Output(name=out_name, terminal_classes=tuple(out_classes))

    return ClassificationTree(use_case=use_case, variables=tuple(variables), output=output)


def parse_versioned_tree(root) -> ClassificationTree:
    """``<classificationTrees>``: the last ``<treeVersion>`` is the current one."""
    versions = children(root, "treeVersion")
    if not versions:
        raise ParseError("classificationTrees document has no treeVersion")
    latest = versions[-1]
    uc_el = first_child(latest, "useCase")
    if uc_el is None:
        raise ParseError("treeVersion has no useCase", detail=f"version={latest.get('version')}")
    tree = _parse_use_case(uc_el)
    return _with_system(tree, root.get("system") or field_value(root, "system"))


def parse_single_tree(root) -> ClassificationTree:
    """``<classificationTree>`` with one ``<useCase>``."""
    uc_el = first_child(root, "useCase")
    if uc_el is None:
        raise ParseError("classificationTree document has no useCase")
    tree = _parse_use_case(uc_el)
    return _with_system(tree, root.get("system") or field_value(root, "system"))


def parse_data_dictionary(root) -> ClassificationTree:
    """Legacy ``<DataDictionary>``: numeric ``<Range>`` and discrete ``<Enum>`` entries."""
    variables = []
    for idx, var_el in enumerate(children(root, "Variable")):
        name = field_value(var_el, "Name") or f"var_{idx}"
        classes: List[TerminalClass] = []

        for i, range_el in enumerate(children(var_el, "Range")):
            min_text = field_value(range_el, "Min")
            max_text = field_value(range_el, "Max")
            valid_text = field_value(range_el, "valid")
            classes.append(TerminalClass(
                id=f"{name}-range-{i}",
                label=field_value(range_el, "label") or f"{min_text}-{max_text}",
                min=decode_bound_text(min_text),
                max=decode_bound_text(max_text),
                valid=True if valid_text is None else valid_text.strip().lower() == "true",
            ))

        enum_el = first_child(var_el, "Enum")
        if enum_el is not None:
            for i, value_el in enumerate(children(enum_el, "Value")):
                value = (value_el.text or "").strip()
                classes.append(TerminalClass(
                    id=f"{name}-enum-{i}",
                    label=f"{name}={value}",
                    values=(value,),
                ))
            classes.append(TerminalClass(
                id=f"{name}-enum-invalid",
                label=f"{name}=other",
                values=(),
                valid=False,
            ))

        variables.append(Variable(
            name=name,
            type=VariableType.from_label(field_value(var_el, "Type")),
            terminal_classes=tuple(classes),
        ))

    return ClassificationTree(variables=tuple(variables), system=root.get("system") or "System")


def _with_system(tree: ClassificationTree, system: Optional[str]) -> ClassificationTree:
    if not system:
        return tree
    return ClassificationTree(
        use_case=tree.use_case,
        variables=tree.variables,
        output=tree.output,
        system=system,
    )


def _parse_diagram(root) -> ClassificationTree:
    # Imported lazily to keep the two modules free of a cycle
    from diagram_parser import parse_diagram
    return parse_diagram(root)


SCHEMA_PARSERS: Dict[str, Callable] = {
    "classificationTrees": parse_versioned_tree,
    "classificationTree": parse_single_tree,
    "DataDictionary": parse_data_dictionary,
    "mxfile": _parse_diagram,
    "mxGraphModel": _parse_diagram,
}


def detect_schema(root) -> Optional[str]:
    """Return the schema discriminator for a root element, or None if unknown."""
    name = local_name(root)
    if name in SCHEMA_PARSERS:
        return name
    return None


def parse(xml_text) -> ClassificationTree:
    """
    Parse a classification-tree document in any supported shape.

    Args:
        xml_text: Raw XML as str or bytes

    Returns:
        ClassificationTree

    Raises:
        ParseError: If the document is malformed or its root matches no known shape
    """
    root = load_document(xml_text)
    schema = detect_schema(root)
    if schema is None:
        raise ParseError(
            "Unrecognized classification tree format",
            detail=f"root element <{local_name(root)}> is not one of {sorted(SCHEMA_PARSERS)}",
        )
    tree = SCHEMA_PARSERS[schema](root)
    logger.info(f"Parsed {schema} document: {len(tree.variables)} variables, output={'yes' if tree.output else 'no'}")
    return tree
