"""
Recover a JSON object from free-form model output.

Models are asked for a bare JSON object but often wrap it in a markdown
fence, surround it with prose, or emit raw newlines inside string values.
Each stage below is a pure function ``text -> dict | None``; ``recover_json``
runs them in order and stops at the first success.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

_FENCED_OBJECT_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_BARE_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_NAMED_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\f": "\\f",
    "\b": "\\b",
}

# Defaults for fields the regex stage could not find
FIELD_DEFAULTS: dict[str, Any] = {
    "type": "patch",
    "description": "Solution generated",
    "code": "",
    "confidence": 75,
    "risk": "medium",
    "estimated_time": "5 minutes",
    "steps": [],
}

_STRING_FIELD_RE = r'"{name}"\s*:\s*"((?:[^"\\]|\\.)*)"'
_CONFIDENCE_RE = re.compile(r'"confidence"\s*:\s*(\d+)')


def extract_candidate(text: str) -> str | None:
    """Return the fenced ``{...}`` block, else the first brace-delimited substring."""
    if not text:
        return None
    match = _FENCED_OBJECT_RE.search(text)
    if match:
        return match.group(1).strip()
    match = _BARE_OBJECT_RE.search(text)
    if match:
        return match.group(0).strip()
    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_direct(text: str) -> dict[str, Any] | None:
    """Stage 1: strict parse of the extracted candidate."""
    candidate = extract_candidate(text)
    if candidate is None:
        return None
    return _loads_object(candidate)


def escape_control_characters(candidate: str) -> str:
    """
    Escape raw control characters that appear inside JSON string literals.

    Tracks whether the scanner is inside a quoted string and whether the
    previous character was a backslash that has not yet been consumed.
    Characters outside strings are copied unchanged.
    """
    out: list[str] = []
    in_string = False
    pending_escape = False
    for char in candidate:
        if pending_escape:
            out.append(char)
            pending_escape = False
            continue
        if char == "\\" and in_string:
            out.append(char)
            pending_escape = True
            continue
        if char == '"':
            in_string = not in_string
            out.append(char)
            continue
        if in_string:
            if char in _NAMED_ESCAPES:
                out.append(_NAMED_ESCAPES[char])
            elif ord(char) < 0x20 or ord(char) == 0x7F:
                out.append(f"\\u{ord(char):04x}")
            else:
                out.append(char)
        else:
            out.append(char)
    return "".join(out)


def parse_repaired(text: str) -> dict[str, Any] | None:
    """Stage 2: strict parse after escaping in-string control characters."""
    candidate = extract_candidate(text)
    if candidate is None:
        return None
    return _loads_object(escape_control_characters(candidate))


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"', strict=False)
    except (json.JSONDecodeError, ValueError):
        return value.replace("\\n", "\n").replace("\\t", "\t").replace('\\"', '"')


def extract_fields(text: str) -> dict[str, Any] | None:
    """
    Stage 3: pull known fields out one by one.

    Returns None when none of description, code, type or confidence is
    present; otherwise a record with FIELD_DEFAULTS filling the gaps.
    """
    source = extract_candidate(text) or text or ""
    found: dict[str, Any] = {}
    for name in ("description", "code", "type"):
        match = re.search(_STRING_FIELD_RE.format(name=name), source)
        if match:
            found[name] = _unescape(match.group(1))
    match = _CONFIDENCE_RE.search(source)
    if match:
        found["confidence"] = int(match.group(1))
    if not found:
        return None
    return {**FIELD_DEFAULTS, **found}


STAGES: tuple[Callable[[str], dict[str, Any] | None], ...] = (
    parse_direct,
    parse_repaired,
    extract_fields,
)


def recover_json(text: str) -> dict[str, Any]:
    """Best-effort structured record from model text; never raises, ``{}`` when nothing found."""
    for stage in STAGES:
        try:
            result = stage(text or "")
        except Exception as e:  # noqa: BLE001
            logger.debug("Recovery stage %s raised: %s", stage.__name__, e)
            continue
        if result is not None:
            if stage is not parse_direct:
                logger.info("Recovered model output via %s", stage.__name__)
            return result
    logger.warning("Could not recover JSON from model output", extra={"preview": (text or "")[:200]})
    return {}
