"""
Range-string parsing shared by every classification-tree schema.

Turns terminal-class content such as "0-30", "30.1-120", "-inf-0, >300" or
"true" into either a numeric interval or a literal-value set, plus a validity
flag decided by the label/content heuristic.
"""
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from data_models import TerminalClass, decode_bound
from errors import ParseError

logger = logging.getLogger(__name__)

_NUMBER = r"[-+]?\d+(?:\.\d+)?"
_NUMBER_RE = re.compile(rf"^{_NUMBER}$")
_INTERVAL_RE = re.compile(rf"^({_NUMBER}|-inf)\s*-\s*({_NUMBER}|\+?inf|∞)$", re.IGNORECASE)
_NEG_INF_RE = re.compile(rf"^-inf\s*-\s*({_NUMBER})", re.IGNORECASE)
_GREATER_RE = re.compile(rf"^>=?\s*({_NUMBER})")
_LESS_RE = re.compile(rf"^<=?\s*({_NUMBER})")
_DECIMALS_RE = re.compile(r"\d+\.(\d+)")


@dataclass(frozen=True)
class ParsedRange:
    min: Optional[float] = None
    max: Optional[float] = None
    values: Tuple[Any, ...] = ()
    valid: bool = True
    precision: Optional[int] = None


def decimal_places(text: str) -> Optional[int]:
    """Largest number of decimal places written in any numeric token of `text`."""
    places = [len(m.group(1)) for m in _DECIMALS_RE.finditer(text or "")]
    if places:
        return max(places)
    if re.search(r"\d", text or ""):
        return 0
    return None


def looks_invalid(name: str, content: Any) -> bool:
    """
    Heuristic invalidity check.

    A class is invalid when its name mentions "invalid" or its content carries
    an infinity or comparison token.
    """
    if "invalid" in (name or "").lower():
        return True
    if isinstance(content, str):
        return "inf" in content.lower() or ">" in content or "<" in content
    return False


def _to_number(token: str) -> float:
    lowered = token.strip().lower()
    if lowered in ("inf", "+inf", "∞"):
        return math.inf
    if lowered == "-inf":
        return -math.inf
    return float(lowered)


def parse_range_string(text: Optional[str]) -> Optional[ParsedRange]:
    """
    Parse a terminal-class content string.

    Args:
        text: Raw content, e.g. "0-30", "-inf-0, >300", "<0", "true", "Male"

    Returns:
        ParsedRange, or None when the content is empty
    """
    if text is None:
        return None
    trimmed = str(text).strip()
    if not trimmed:
        return None
    precision = decimal_places(trimmed)

    if "inf" in trimmed.lower() or ">" in trimmed or "<" in trimmed:
        # Comma-separated invalid ranges: the first part is the primary one
        first = trimmed.split(",")[0].strip()
        match = _NEG_INF_RE.match(first)
        if match:
            return ParsedRange(min=-math.inf, max=float(match.group(1)), valid=False, precision=precision)
        match = _GREATER_RE.match(first)
        if match:
            return ParsedRange(min=float(match.group(1)) + 0.1, max=math.inf, valid=False, precision=precision)
        match = _LESS_RE.match(first)
        if match:
            return ParsedRange(min=-math.inf, max=float(match.group(1)) - 0.1, valid=False, precision=precision)
        match = _INTERVAL_RE.match(first)
        if match:
            return ParsedRange(
                min=_to_number(match.group(1)),
                max=_to_number(match.group(2)),
                valid=False,
                precision=precision,
            )
        logger.debug(f"Unbounded invalid range content: {trimmed!r}")
        return ParsedRange(min=-math.inf, max=math.inf, valid=False, precision=precision)

    if _NUMBER_RE.match(trimmed):
        num = float(trimmed)
        return ParsedRange(min=num, max=num, precision=precision)

    match = _INTERVAL_RE.match(trimmed)
    if match:
        return ParsedRange(min=_to_number(match.group(1)), max=_to_number(match.group(2)), precision=precision)

    lowered = trimmed.lower()
    if lowered == "true":
        return ParsedRange(values=(True,))
    if lowered == "false":
        return ParsedRange(values=(False,))
    return ParsedRange(values=(trimmed,))


def decode_bound_text(text: Optional[str]) -> Optional[float]:
    """Parse a single Min/Max bound ("12", "inf", "-inf"); blank means absent."""
    if text is None or not str(text).strip():
        return None
    try:
        return decode_bound(str(text))
    except ValueError as e:
        raise ParseError(f"Invalid numeric bound {text!r}", detail=str(e)) from e


def build_terminal_class(class_id: str, label: str, content: Optional[str]) -> TerminalClass:
    """Create a TerminalClass from a label and its raw range/value content."""
    parsed = parse_range_string(content)
    valid = not looks_invalid(label, content)
    if parsed is None:
        return TerminalClass(id=class_id, label=label, valid=valid)
    return TerminalClass(
        id=class_id,
        label=label,
        min=parsed.min,
        max=parsed.max,
        values=parsed.values,
        valid=valid,
        precision=parsed.precision,
    )
