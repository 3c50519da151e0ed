"""
Syntax test generation.

Reads <Syntax> format definitions from a use-case data dictionary and derives,
per definition, one string matching the pattern and four malformed variants:

- invalid value: a symbol appended
- invalid addition: a symbol inserted at a random position
- invalid omission: one character removed
- invalid substitution: one character replaced by an alphanumeric one
"""
import calendar
import logging
import random
import re
import string
from typing import List, Optional

import rstr

from data_models import SyntaxDefinition, SyntaxTestCase
from errors import ParseError
from xml_ingestion import children, field_value, first_child, load_document, local_name

logger = logging.getLogger(__name__)

SYMBOLS = [chr(code) for lo, hi in ((33, 47), (58, 64), (91, 96), (123, 126)) for code in range(lo, hi + 1)]
ALPHANUMERIC = string.digits + string.ascii_uppercase + string.ascii_lowercase
MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _collect(element, definitions: List[SyntaxDefinition], name: str, data_type: str) -> None:
    for syntax in children(element, "Syntax"):
        pattern = field_value(syntax, "Pattern")
        if not pattern:
            continue
        definitions.append(SyntaxDefinition(
            name=name,
            description=name,
            pattern=pattern,
            type=syntax.get("Type") or data_type,
            length=syntax.get("Length") or "",
        ))


def parse_syntax_definitions(xml_text) -> List[SyntaxDefinition]:
    """
    Syntax definitions of every input, then of the output, of the first use case.

    Args:
        xml_text: Data dictionary XML rooted at <UC>

    Returns:
        Definitions in document order; empty when the document has no use case

    Raises:
        ParseError: If the XML is malformed or not a <UC> data dictionary
    """
    root = load_document(xml_text)
    if local_name(root) != "UC":
        raise ParseError(
            "Unrecognized syntax dictionary format",
            detail=f"root element <{local_name(root)}> is not UC",
        )
    usecase = first_child(root, "Usecase")
    if usecase is None:
        return []

    definitions: List[SyntaxDefinition] = []
    for input_el in children(usecase, "Input"):
        _collect(input_el, definitions, field_value(input_el, "Varname", ""), field_value(input_el, "DataType", ""))
    output = first_child(usecase, "Output")
    if output is not None:
        _collect(output, definitions, field_value(output, "Varname") or "Output", field_value(output, "DataType", ""))
    logger.info(f"Found {len(definitions)} syntax definitions")
    return definitions


class SyntaxTestGenerator:
    """Generates syntax test strings; a seed makes every draw repeatable."""
    __test__ = False

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)
        self.xeger = rstr.Rstr(self.rng)

    def _date(self) -> str:
        # DDMonYYYY
        year = self.rng.randint(2000, 2100)
        month = self.rng.randrange(12)
        day = self.rng.randint(1, calendar.monthrange(year, month + 1)[1])
        return f"{day:02d}{MONTHS[month]}{year}"

    def valid_sample(self, definition: SyntaxDefinition) -> str:
        if definition.name == "Date":
            return self._date()
        try:
            return self.xeger.xeger(definition.pattern)
        except re.error as e:
            raise ParseError(f"Invalid syntax pattern for {definition.name}", detail=str(e)) from e

    def _position(self, text: str) -> int:
        return self.rng.randrange(len(text)) if text else 0

    def generate(self, definitions: List[SyntaxDefinition]) -> List[SyntaxTestCase]:
        cases = []
        for definition in definitions:
            valid = self.valid_sample(definition)
            add_at = self.rng.randint(0, len(valid))
            omit_at = self._position(valid)
            sub_at = self._position(valid)
            cases.append(SyntaxTestCase(
                name=definition.name,
                description=definition.description,
                regex=definition.pattern,
                type=definition.type,
                length=definition.length,
                valid=valid,
                invalid_value=valid + self.rng.choice(SYMBOLS),
                invalid_addition=valid[:add_at] + self.rng.choice(SYMBOLS) + valid[add_at:],
                invalid_omission=valid[:omit_at] + valid[omit_at + 1:],
                invalid_substitution=valid[:sub_at] + self.rng.choice(ALPHANUMERIC) + valid[sub_at + 1:],
            ))
        logger.info(f"Generated syntax test cases for {len(cases)} definitions")
        return cases


def generate_syntax_tests(xml_text, seed: Optional[int] = None) -> List[SyntaxTestCase]:
    return SyntaxTestGenerator(seed).generate(parse_syntax_definitions(xml_text))
