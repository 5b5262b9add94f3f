from __future__ import annotations

import math
from typing import Any, Dict

from .validation import WRAPPER_KEY

_ENVELOPE_KEYS = ("matchScore", "analysis")
_LIST_OF_STRING_KEYS = ("skills", "certifications", "awards", "languages")
_SCHOOL_ALIASES = ("school", "university", "institution", "college")


def normalize_envelope(candidate: Any, *, default_match_score: int = 80) -> Dict[str, Any]:
    """Coerce a final candidate into the optimizedContent/matchScore/analysis envelope."""
    if not isinstance(candidate, dict):
        candidate = {}
    wrapped = candidate.get(WRAPPER_KEY)
    if isinstance(wrapped, dict):
        content = dict(wrapped)
    else:
        # Model flattened the envelope: the whole value is the document.
        content = {key: value for key, value in candidate.items() if key not in _ENVELOPE_KEYS}
        content.pop(WRAPPER_KEY, None)
    return {
        WRAPPER_KEY: normalize_content(content),
        "matchScore": _match_score(candidate.get("matchScore"), default_match_score),
        "analysis": _analysis_entries(candidate.get("analysis")),
    }


def normalize_content(content: Dict[str, Any]) -> Dict[str, Any]:
    normalized = dict(content)
    for key in ("fullName", "contactInfo", "summary"):
        value = normalized.get(key)
        if value is not None and not isinstance(value, str):
            normalized[key] = str(value)
    normalized["skills"] = _skill_names(normalized.get("skills"))
    for key in _LIST_OF_STRING_KEYS[1:]:
        normalized[key] = _string_items(normalized.get(key))
    normalized["experience"] = [
        _experience_entry(role) for role in _dict_items(normalized.get("experience"))
    ]
    normalized["education"] = [
        _education_entry(entry) for entry in _dict_items(normalized.get("education"))
    ]
    normalized["projects"] = [
        _project_entry(project) for project in _dict_items(normalized.get("projects"))
    ]
    return normalized


def _skill_names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if not isinstance(value, list):
        return []
    names: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name") or item.get("label") or ""
        text = str(item).strip() if item is not None else ""
        if text:
            names.append(text)
    return names


def _string_items(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("name") or item.get("title") or ""
        text = str(item).strip() if item is not None else ""
        if text:
            items.append(text)
    return items


def _dict_items(value: Any) -> list[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _text_fields(entry: Dict[str, Any], keys: tuple[str, ...]) -> Dict[str, Any]:
    normalized = dict(entry)
    for key in keys:
        value = normalized.get(key)
        if value is not None and not isinstance(value, str):
            normalized[key] = str(value)
    return normalized


def _experience_entry(role: Dict[str, Any]) -> Dict[str, Any]:
    entry = _text_fields(role, ("title", "company", "date"))
    entry["points"] = _string_items(role.get("points"))
    return entry


def _education_entry(edu: Dict[str, Any]) -> Dict[str, Any]:
    entry = _text_fields(edu, ("degree", "school", "date"))
    for alias in _SCHOOL_ALIASES:
        value = edu.get(alias)
        if isinstance(value, str) and value.strip():
            entry["school"] = value
            break
    score = edu.get("score")
    if score is None or (isinstance(score, str) and score.strip().lower() in {"", "null"}):
        score = edu.get("gpa")
    if score is None or (isinstance(score, str) and score.strip().lower() in {"", "null"}):
        entry["score"] = None
    else:
        entry["score"] = str(score).strip()
    return entry


def _project_entry(project: Dict[str, Any]) -> Dict[str, Any]:
    entry = _text_fields(project, ("name", "description"))
    if not entry.get("name") and isinstance(project.get("title"), str):
        entry["name"] = project["title"]
    return entry


def _match_score(value: Any, default: int) -> int:
    fallback = max(0, min(100, int(default)))
    if value is None or isinstance(value, bool):
        return fallback
    try:
        score = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(score):
        return fallback
    # Clamp before rounding: json.loads reads 1e999 as inf.
    return int(round(max(0.0, min(100.0, score))))


def _analysis_entries(value: Any) -> list[Dict[str, str]]:
    entries: list[Dict[str, str]] = []
    for item in _dict_items(value):
        entries.append(
            {
                "section": str(item.get("section") or ""),
                "change": str(item.get("change") or ""),
                "reason": str(item.get("reason") or ""),
            }
        )
    return entries
