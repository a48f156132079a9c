"""Validates the backend's CV analysis payload and builds an ExtractedCV."""

from typing import Any, Dict, List

from cvscan.models import ExtractedCV
from cvscan.pipeline.exceptions import IntakeResponseError


# Canonical field -> accepted spellings, first match wins
_FIELD_ALIASES = {
    "personal_info": ("personalInfo", "personal", "personal_info"),
    "summary": ("summary",),
    "work_history": ("workHistory", "experience", "work_history"),
    "skills": ("skills",),
    "education": ("education",),
    "confidence_score": ("confidenceScore", "confidence", "confidence_score"),
    "improvement_suggestions": ("improvementSuggestions", "suggestions", "improvement_suggestions"),
}

_OPTIONAL_FIELDS = frozenset({"improvement_suggestions"})


def unwrap_envelope(body: Any) -> Dict[str, Any]:
    """Strip the ``{"success", "data"}`` API envelope and ``analysis`` nesting."""
    if not isinstance(body, dict):
        raise IntakeResponseError("Response body must be a JSON object")

    if "success" in body:
        if body["success"] is False:
            message = body.get("message") or body.get("error") or "Backend rejected the CV"
            raise IntakeResponseError(str(message))
        body = body.get("data")
        if not isinstance(body, dict):
            raise IntakeResponseError("'data' must be an object")

    analysis = body.get("analysis")
    if isinstance(analysis, dict):
        return analysis
    return body


def parse_intake_payload(body: Any) -> ExtractedCV:
    """Build an ExtractedCV from a decoded JSON response.

    Raises:
        IntakeResponseError: when a required field is missing or mistyped.
    """
    data = unwrap_envelope(body)
    values = _collect_fields(data)

    return ExtractedCV(
        personal_info=_require_object(values["personal_info"], "personal_info"),
        summary=_require_string(values["summary"], "summary"),
        work_history=_require_object_list(values["work_history"], "work_history"),
        skills=_require_string_list(values["skills"], "skills"),
        education=_require_object_list(values["education"], "education"),
        confidence_score=_require_confidence(values["confidence_score"]),
        improvement_suggestions=_require_string_list(
            values.get("improvement_suggestions") or [], "improvement_suggestions"
        ),
    )


def _collect_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for field, aliases in _FIELD_ALIASES.items():
        for alias in aliases:
            if alias in data:
                values[field] = data[alias]
                break
        else:
            if field not in _OPTIONAL_FIELDS:
                raise IntakeResponseError(f"Missing required field: {field}")
    return values


def _require_object(raw: Any, name: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise IntakeResponseError(f"'{name}' must be an object")
    return raw


def _require_string(raw: Any, name: str) -> str:
    if not isinstance(raw, str):
        raise IntakeResponseError(f"'{name}' must be a string")
    return raw


def _require_object_list(raw: Any, name: str) -> List[Dict[str, Any]]:
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise IntakeResponseError(f"'{name}' must be a list of objects")
    return raw


def _require_string_list(raw: Any, name: str) -> List[str]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise IntakeResponseError(f"'{name}' must be a list of strings")
    return raw


def _require_confidence(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise IntakeResponseError("'confidence_score' must be a number")
    if not 0.0 <= raw <= 1.0:
        raise IntakeResponseError(f"'confidence_score' must be within [0, 1], got {raw}")
    return float(raw)
