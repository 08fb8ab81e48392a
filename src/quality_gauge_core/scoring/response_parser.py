"""
MQM Response Parser

Recovers a structured MQM payload from free-form grader output.

Parse steps:
1. Extraction (first ```json fenced block holding valid JSON, otherwise first "{" to last "}")
2. JSON decoding
3. Shape validation (single-language or multi-language)

Every failure is reported as ResponseParseError; the caller decides whether
to retry. All functions are pure.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable

from quality_gauge_core.domain.errors import ResponseParseError
from quality_gauge_core.domain.value_objects import VALID_SEVERITIES, MQMIssue, MQMScore

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_DIMENSIONS = ("accuracy", "fluency", "terminology")


def _decodes(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def extract_json_text(text: str) -> str:
    """
    Cut the JSON object out of a grader response

    Handles plain JSON, markdown code blocks and prose before/after the object.

    Raises:
        ResponseParseError: If no JSON object is found
    """
    candidate = text or ""
    # A fence only wins when its content decodes; fences quoted inside JSON strings do not
    for match in _FENCE_RE.finditer(candidate):
        fenced = match.group(1)
        if "{" in fenced and _decodes(fenced[fenced.find("{"):fenced.rfind("}") + 1]):
            candidate = fenced
            break

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end < start:
        raise ResponseParseError("No JSON object found in response", raw=text)
    return candidate[start:end + 1]


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Extract and decode the JSON object of a grader response

    Raises:
        ResponseParseError: If no object is found or the JSON is malformed
    """
    json_text = extract_json_text(text)
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(
            f"JSON syntax error: {e.msg} (line {e.lineno}, column {e.colno})", raw=text
        ) from e
    if not isinstance(data, dict):
        raise ResponseParseError("Top-level JSON value is not an object", raw=text)
    return data


def _validate_dimension(obj: dict, name: str, path: str, raw: str) -> int:
    value = obj.get(name)
    field_path = f"{path}.{name}" if path else name
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ResponseParseError(f"Expected number, received {value!r}", path=field_path, raw=raw)
    if not 0 <= value <= 100:
        raise ResponseParseError(f"Score must be between 0 and 100, got {value}", path=field_path, raw=raw)
    # Round half up
    return int(math.floor(value + 0.5))


def _validate_issue(issue: Any, path: str, raw: str) -> MQMIssue:
    if not isinstance(issue, dict):
        raise ResponseParseError("Expected object", path=path, raw=raw)
    issue_type = issue.get("type")
    if not isinstance(issue_type, str) or not issue_type.strip():
        raise ResponseParseError("Expected non-empty string", path=f"{path}.type", raw=raw)
    severity = issue.get("severity")
    if not isinstance(severity, str) or severity.strip().lower() not in VALID_SEVERITIES:
        raise ResponseParseError(
            f"Invalid severity {severity!r}, expected one of {', '.join(VALID_SEVERITIES)}",
            path=f"{path}.severity",
            raw=raw,
        )
    message = issue.get("message")
    if not isinstance(message, str):
        raise ResponseParseError("Expected string", path=f"{path}.message", raw=raw)
    return MQMIssue(type=issue_type, severity=severity.strip().lower(), message=message)


def validate_mqm(obj: Any, path: str = "", raw: str = "") -> MQMScore:
    """
    Validate one MQM evaluation object

    Args:
        obj: Decoded JSON value
        path: Dotted location of obj (used in error messages)
        raw: Original response text (kept on the error for diagnostics)

    Returns:
        MQMScore

    Raises:
        ResponseParseError: On any shape mismatch
    """
    if not isinstance(obj, dict):
        raise ResponseParseError("Expected object", path=path, raw=raw)

    scores = {name: _validate_dimension(obj, name, path, raw) for name in _DIMENSIONS}

    issues = obj.get("issues")
    issues_path = f"{path}.issues" if path else "issues"
    if not isinstance(issues, list):
        raise ResponseParseError(f"Expected array, received {issues!r}", path=issues_path, raw=raw)
    validated = tuple(
        _validate_issue(issue, f"{issues_path}.{i}", raw) for i, issue in enumerate(issues)
    )
    return MQMScore(issues=validated, **scores)


def parse_mqm_response(text: str) -> MQMScore:
    """
    Parse a single-language grader response

    Raises:
        ResponseParseError: If extraction, decoding or validation fails
    """
    return validate_mqm(extract_json_object(text), raw=text)


def parse_multi_language_response(
    text: str,
    languages: Iterable[str] | None = None,
) -> dict[str, MQMScore]:
    """
    Parse a multi-language grader response ({"evaluations": {lang: {...}}})

    Args:
        text: Raw grader output
        languages: Requested languages. When given, only those are validated
            and returned; the response may cover a subset of them but not none.

    Returns:
        Mapping of language code to MQMScore, in request order when languages is given

    Raises:
        ResponseParseError: If extraction, decoding or validation fails
    """
    data = extract_json_object(text)
    evaluations = data.get("evaluations")
    if not isinstance(evaluations, dict):
        raise ResponseParseError(
            f"Expected object, received {evaluations!r}", path="evaluations", raw=text
        )

    if languages is None:
        wanted = list(evaluations.keys())
    else:
        requested = list(languages)
        wanted = [lang for lang in requested if lang in evaluations]
        if not wanted:
            raise ResponseParseError(
                "No evaluations for requested languages: " + ", ".join(requested),
                path="evaluations",
                raw=text,
            )

    return {
        lang: validate_mqm(evaluations[lang], path=f"evaluations.{lang}", raw=text)
        for lang in wanted
    }


def format_parse_error(error: BaseException) -> str:
    """
    Render a parse failure as feedback text for the grader

    Example:
        "Path: evaluations.de.accuracy, Error: Expected number, received 'high'"
    """
    if isinstance(error, ResponseParseError):
        return str(error)
    if isinstance(error, json.JSONDecodeError):
        return f"JSON syntax error: {error.msg}"
    return str(error) or error.__class__.__name__
