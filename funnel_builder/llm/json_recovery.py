from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)

PARSE_FAILURE_MESSAGE = "Unable to parse response. The AI returned invalid data format."

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)(\s*:)")
_SINGLE_QUOTED_RE = re.compile(r"'((?:[^'\\]|\\.)*)'")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")
_CURRENCY_RE = re.compile(r"[$€£¥₹,\s]")
_NULLISH_STRINGS = {"", "[object]", "[object object]", "null", "undefined", "none"}


class JSONRecoveryError(ValueError):
    def __init__(self, message: str = PARSE_FAILURE_MESSAGE, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.raw = raw


def _strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _escape_newlines_in_strings(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char == "\n":
                out.append("\\n")
                continue
            elif char == "\r":
                out.append("\\r")
                continue
            elif char == "\t":
                out.append("\\t")
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def _fix_common_issues(text: str) -> str:
    fixed = _escape_newlines_in_strings(text)
    fixed = _CONTROL_CHARS_RE.sub("", fixed)
    fixed = fixed.replace("[Object]", "null")
    fixed = _TRAILING_COMMA_RE.sub(r"\1", fixed)
    fixed = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', fixed)
    # Only convert quotes when the payload never uses double quotes; apostrophes in prose must survive.
    if '"' not in fixed:
        fixed = _SINGLE_QUOTED_RE.sub(r'"\1"', fixed)
    return fixed


def _extract_json_block(text: str) -> str:
    starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
    if not starts:
        return text
    start = min(starts)
    stack: list[str] = []
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]":
            if stack:
                stack.pop()
            if not stack:
                return text[start : idx + 1]
    return text[start:]


def _repair_truncated(text: str) -> str:
    stack: list[str] = []
    in_string = False
    escaped = False
    string_start = -1
    for idx, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
            string_start = idx
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()

    repaired = text[:string_start] if in_string else text
    repaired = repaired.rstrip()
    if repaired.endswith(":"):
        repaired += " null"
    repaired = repaired.rstrip(", \n\t")
    return repaired + "".join(reversed(stack))


def _strategies() -> list[tuple[str, Callable[[str], str]]]:
    return [
        ("direct", lambda text: text),
        ("strip_fences", _strip_code_fences),
        ("fix_common_issues", lambda text: _fix_common_issues(_strip_code_fences(text))),
        ("extract_block", lambda text: _fix_common_issues(_extract_json_block(_strip_code_fences(text)))),
        (
            "repair_truncated",
            lambda text: _TRAILING_COMMA_RE.sub(
                r"\1",
                _repair_truncated(_fix_common_issues(_extract_json_block(_strip_code_fences(text)))),
            ),
        ),
    ]


def parse_json_with_recovery(text: str, *, context: str | None = None) -> Any:
    """Parse model output as JSON, progressively repairing the usual LLM formatting damage.

    Tries a direct parse, then fenced blocks, then common syntax fixes, then the first
    balanced object or array in the text, and finally closes brackets on truncated output.
    """
    if not isinstance(text, str) or not text.strip():
        raise JSONRecoveryError(raw=text if isinstance(text, str) else None)

    for name, strategy in _strategies():
        try:
            candidate = strategy(text)
            result = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if name != "direct":
            logger.info("Recovered JSON from model output", extra={"strategy": name, "context": context})
        return result

    logger.warning(
        "JSON recovery failed",
        extra={"context": context, "length": len(text), "preview": text[:200]},
    )
    raise JSONRecoveryError(raw=text)


def coerce_to_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lower() in _NULLISH_STRINGS:
            return None
        return stripped
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        parts = [part for part in (coerce_to_string(item) for item in value) if part]
        return "\n\n".join(parts) if parts else None
    if isinstance(value, dict):
        for key in ("content", "text", "value", "description"):
            if key in value:
                coerced = coerce_to_string(value[key])
                if coerced:
                    return coerced
        return json.dumps(value)
    return str(value)


def coerce_to_string_list(value: Any, *, min_items: int = 0, max_items: int = 20) -> list[str]:
    items: list[str] = []
    if value is None:
        items = []
    elif isinstance(value, list):
        items = [item for item in (coerce_to_string(entry) for entry in value) if item]
    elif isinstance(value, dict):
        items = [item for item in (coerce_to_string(entry) for entry in value.values()) if item]
    elif isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return coerce_to_string_list(parsed, min_items=min_items, max_items=max_items)
        for line in stripped.splitlines():
            cleaned = _LIST_MARKER_RE.sub("", line).strip()
            if cleaned and cleaned.lower() not in _NULLISH_STRINGS:
                items.append(cleaned)
    else:
        coerced = coerce_to_string(value)
        items = [coerced] if coerced else []

    if len(items) < min_items:
        logger.warning("Coerced list shorter than expected", extra={"count": len(items), "min_items": min_items})
    return items[:max_items]


def coerce_to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    cleaned = _CURRENCY_RE.sub("", value).lower()
    if not cleaned:
        return None
    multiplier = 1.0
    if cleaned.endswith("k"):
        multiplier, cleaned = 1_000.0, cleaned[:-1]
    elif cleaned.endswith("m"):
        multiplier, cleaned = 1_000_000.0, cleaned[:-1]
    try:
        return float(cleaned) * multiplier
    except ValueError:
        return None


def extract_pricing(data: Any) -> dict[str, Optional[float]]:
    """Pull regular and webinar prices out of loosely-shaped extracted intake data."""
    pricing: dict[str, Optional[float]] = {"regular": None, "webinar": None}
    if not isinstance(data, dict):
        return pricing

    nested = data.get("pricing")
    if isinstance(nested, dict):
        pricing["regular"] = coerce_to_number(nested.get("regular"))
        pricing["webinar"] = coerce_to_number(nested.get("webinar"))
    elif nested is not None:
        pricing["regular"] = coerce_to_number(nested)

    if pricing["regular"] is None:
        pricing["regular"] = coerce_to_number(data.get("regularPrice") or data.get("price"))
    if pricing["webinar"] is None:
        pricing["webinar"] = coerce_to_number(data.get("webinarPrice"))
    return pricing
