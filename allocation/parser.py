"""
Response parsing and shape validation for LLM allocation replies.

Parsing never raises: a reply that cannot be decoded is logged and treated
as "no recommendations". Validation checks shape only. Whether the ids
point at real, eligible records is the engine's job.
"""

import json
import logging
import re

log = logging.getLogger(__name__)

REQUIRED_ALLOCATION_FIELDS = ("student_id", "supervisor_id", "project_id")


def _extract_json_object(text: str) -> str:
    """
    Extract the outermost JSON object from LLM response text.
    Handles markdown code fences, leading/trailing text, etc.
    """
    text = re.sub(r"```(?:json)?\s*\n?", "", text)
    text = text.strip()

    start = text.find("{")
    if start == -1:
        raise ValueError("No JSON object found in response")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    raise ValueError("Unbalanced braces in JSON object")


def parse_allocation_response(raw_text: str) -> dict:
    """
    Decode an LLM reply into a dict. Returns {} on any failure.
    """
    if not raw_text or not raw_text.strip():
        log.warning("Empty LLM response")
        return {}

    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            data = json.loads(_extract_json_object(raw_text))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError subclass
            log.warning(f"Failed to parse LLM response: {e}. First 300 chars: {raw_text[:300]}")
            return {}

    if not isinstance(data, dict):
        log.warning(f"Expected JSON object from LLM, got {type(data).__name__}")
        return {}
    return data


def validate_recommendations(data: dict) -> bool:
    """True iff `allocations` is a list of objects each naming student, supervisor and project."""
    allocations = data.get("allocations") if isinstance(data, dict) else None
    if not isinstance(allocations, list):
        return False

    for item in allocations:
        if not isinstance(item, dict):
            return False
        if any(item.get(f) is None for f in REQUIRED_ALLOCATION_FIELDS):
            return False
    return True
