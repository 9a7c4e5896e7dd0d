"""Parse free-form plan text returned by the model into ordered steps."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, List, Sequence, Tuple

from .schemas import Step

__all__ = ["PLAN_FORMATS", "parse_plan_response"]

LOGGER = logging.getLogger(__name__)

_Draft = Tuple[str, str]

_MARKER_BLOCK = re.compile(r"---PLAN-START---\s*([\s\S]*?)\s*---PLAN-END---", re.IGNORECASE)
_MARKER_STEP = re.compile(
    r"STEP\s+(\d+):\s*(.+?)(?=\r?\n)\s*DO:\s*(.+?)(?=(?:STEP\s+\d+:|$))",
    re.IGNORECASE | re.DOTALL,
)
_JSON_ARRAY = re.compile(r"\[\s*\{[\s\S]*?\}\s*\]")
_LEGACY_STEP = re.compile(
    r"STEP\s+(\d+):\s*(.+?)(?=\r?\n)[\s\S]*?INSTRUCTION:\s*(.+?)(?=(?:STEP\s+\d+:|$))",
    re.IGNORECASE | re.DOTALL,
)
_NUMBERED_ITEM = re.compile(r"(\d+)\.\s+(.+?)(?=(?:\r?\n\d+\.|$))", re.DOTALL)
_NUMBERED_SEPARATOR = re.compile(r"\s*[-:]\s*")
_GENERIC_STEP = re.compile(
    r"(?:Step\s*)?(\d+)[:\)]\s*([^\n]+)\n([^S\d]+?)(?=(?:Step\s*\d|$|\d+[:\)]))",
    re.IGNORECASE | re.DOTALL,
)


def _parse_marker_format(response: str) -> List[_Draft]:
    block = _MARKER_BLOCK.search(response)
    if block is None:
        return []
    return [
        (match.group(2).strip(), match.group(3).strip())
        for match in _MARKER_STEP.finditer(block.group(1))
    ]


def _text_field(entry: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        if key in entry:
            value = entry[key]
            return value if isinstance(value, str) else ("" if value is None else str(value))
    return None


def _parse_json_format(response: str) -> List[_Draft]:
    match = _JSON_ARRAY.search(response)
    if match is None:
        return []
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        LOGGER.debug("Plan response contained an array that was not valid JSON")
        return []
    if not isinstance(payload, list):
        return []

    drafts: List[_Draft] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        description = _text_field(entry, "description", "step") or ""
        instruction = _text_field(entry, "instruction", "do", "action")
        if instruction is None:
            instruction = description
        if description.strip() or instruction.strip():
            drafts.append((description.strip(), instruction.strip()))
    return drafts


def _parse_legacy_format(response: str) -> List[_Draft]:
    return [
        (match.group(2).strip(), match.group(3).strip())
        for match in _LEGACY_STEP.finditer(response)
    ]


def _parse_numbered_list(response: str) -> List[_Draft]:
    drafts: List[_Draft] = []
    for match in _NUMBERED_ITEM.finditer(response):
        parts = _NUMBERED_SEPARATOR.split(match.group(2).strip())
        description = parts[0].strip()
        instruction = " ".join(parts[1:]).strip() if len(parts) > 1 else description
        drafts.append((description, instruction))
    return drafts


def _parse_generic_steps(response: str) -> List[_Draft]:
    drafts: List[_Draft] = []
    for match in _GENERIC_STEP.finditer(response):
        description = match.group(2).strip()
        instruction = match.group(3).strip()
        drafts.append((description, instruction or description))
    return drafts


PLAN_FORMATS: Sequence[Tuple[str, Callable[[str], List[_Draft]]]] = (
    ("marker", _parse_marker_format),
    ("json", _parse_json_format),
    ("legacy", _parse_legacy_format),
    ("numbered", _parse_numbered_list),
    ("generic", _parse_generic_steps),
)


def parse_plan_response(response: str) -> List[Step]:
    """Return the steps found in ``response``, or an empty list.

    Formats are tried in priority order and the first one yielding any step
    wins. Steps are renumbered ``1..N`` regardless of the numbers in the text.
    """
    if not response or not response.strip():
        return []
    for name, parser in PLAN_FORMATS:
        drafts = parser(response)
        if drafts:
            LOGGER.debug("Parsed %d plan step(s) using the %s format", len(drafts), name)
            return [
                Step(step_number=index, description=description, instruction=instruction.rstrip())
                for index, (description, instruction) in enumerate(drafts, start=1)
            ]
    return []
