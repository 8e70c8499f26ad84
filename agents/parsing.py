"""
JSON extraction, repair and contract validation for model responses.

Models rarely return bare JSON. extract_json() tries, in order:
  1. the raw text as-is
  2. the first balanced top-level {...} object
  3. the first ```json fenced block
  4. a permissive repair of each candidate above
"""
import copy
import json
import re
from typing import Any, Iterable, Mapping, Optional

from agents.errors import ContractViolationError, UnparsableResponseError

_FENCE_JSON = re.compile(r"```json\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_FENCE_ANY = re.compile(r"```[a-zA-Z0-9_-]*\s*(.*?)```", re.DOTALL)

_PY_LITERALS = {"True": "true", "False": "false", "None": "null"}

_JSON_TYPES = {
    "object": dict,
    "array": list,
    "string": str,
    "number": (int, float),
    "boolean": bool,
}


def extract_json(raw_text: str) -> Any:
    """
    Recover a JSON value from free-form model text.

    Raises:
        UnparsableResponseError: carrying the raw text for diagnostics
    """
    if raw_text is None or not raw_text.strip():
        raise UnparsableResponseError(raw_text or "", "Model response was empty")

    candidates = [raw_text.strip()]

    balanced = find_balanced_object(raw_text)
    if balanced is not None:
        candidates.append(balanced)

    fenced = _find_fenced_block(raw_text)
    if fenced is not None:
        candidates.append(fenced)

    for candidate in candidates:
        parsed, ok = _try_parse(candidate)
        if ok:
            return parsed

    for candidate in candidates:
        parsed, ok = _try_parse(repair_json_text(candidate))
        if ok:
            return parsed

    raise UnparsableResponseError(raw_text)


def _try_parse(text: str) -> tuple[Any, bool]:
    try:
        return json.loads(text), True
    except (json.JSONDecodeError, ValueError):
        return None, False


def _find_fenced_block(text: str) -> Optional[str]:
    match = _FENCE_JSON.search(text) or _FENCE_ANY.search(text)
    if match:
        return match.group(1).strip()
    return None


def _scan_string(text: str, start: int) -> int:
    """Index just past the string literal opening at ``start`` (or len(text))."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def find_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring, ignoring braces in strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in ("\"", "'"):
            i = _scan_string(text, i)
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
        i += 1
    return None


def _requote(body: str) -> str:
    """Turn the body of a single-quoted literal into a JSON string literal."""
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            nxt = body[i + 1]
            out.append("'" if nxt == "'" else ch + nxt)
            i += 2
            continue
        out.append("\\\"" if ch == "\"" else ch)
        i += 1
    return "\"" + "".join(out) + "\""


def repair_json_text(text: str) -> str:
    """
    Permissive near-JSON repair.

    Outside string literals: drops trailing commas before } or ], converts
    single-quoted strings to double-quoted, and maps True/False/None.
    """
    out = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch == "\"":
            end = _scan_string(text, i)
            out.append(text[i:end])
            i = end
            continue

        if ch == "'":
            end = _scan_string(text, i)
            body = text[i + 1:end - 1] if end <= n and text[end - 1] == "'" else text[i + 1:end]
            out.append(_requote(body))
            i = end
            continue

        if ch == ",":
            j = i + 1
            while j < n and text[j].isspace():
                j += 1
            if j < n and text[j] in "}]":
                i += 1
                continue

        if ch.isalpha() or ch == "_":
            j = i
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            word = text[i:j]
            out.append(_PY_LITERALS.get(word, word))
            i = j
            continue

        out.append(ch)
        i += 1
    return "".join(out)


# Contract validation

def _split(path: str) -> list[str]:
    return [part for part in path.split(".") if part]


def has_path(data: Any, path: str) -> bool:
    node = data
    for key in _split(path):
        if not isinstance(node, dict) or key not in node:
            return False
        node = node[key]
    return True


def get_path(data: Any, path: str) -> Any:
    node = data
    for key in _split(path):
        node = node[key]
    return node


def _set_path(data: dict, path: str, value: Any) -> None:
    keys = _split(path)
    node = data
    for key in keys[:-1]:
        if key not in node:
            node[key] = {}
        elif not isinstance(node[key], dict):
            raise ContractViolationError(path, f"'{key}' is not an object")
        node = node[key]
    node[keys[-1]] = value


def validate_contract(
    parsed: Any,
    required_fields: Iterable[str],
    defaults: Optional[Mapping[str, Any]] = None,
    field_types: Optional[Mapping[str, str]] = None,
) -> Any:
    """
    Check required dot-paths, backfilling registered defaults.

    The input is never mutated; a deep copy is returned.

    Args:
        parsed: Parsed model output
        required_fields: Ordered dot-paths that must exist
        defaults: dot-path -> default value inserted when the path is missing
            (a nested mapping such as {"a": {"b": 0}} is also accepted)
        field_types: dot-path -> "object" | "array" | "string" | "number" | "boolean"

    Raises:
        ContractViolationError: naming the first offending path
    """
    defaults = defaults or {}
    result = copy.deepcopy(parsed)

    for path in required_fields:
        if has_path(result, path):
            continue
        if path in defaults:
            default = defaults[path]
        elif has_path(defaults, path):
            default = get_path(defaults, path)
        else:
            raise ContractViolationError(path)
        if not isinstance(result, dict):
            raise ContractViolationError(path, "response is not a JSON object")
        _set_path(result, path, copy.deepcopy(default))

    for path, type_name in (field_types or {}).items():
        if not has_path(result, path):
            continue
        value = get_path(result, path)
        expected = _JSON_TYPES[type_name]
        # bool is an int subclass; do not let it pass as a number
        if type_name == "number" and isinstance(value, bool):
            raise ContractViolationError(path, f"expected {type_name}")
        if not isinstance(value, expected):
            raise ContractViolationError(path, f"expected {type_name}")

    return result
