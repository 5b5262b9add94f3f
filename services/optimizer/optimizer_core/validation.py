from __future__ import annotations

import json
import re
from typing import Any, Dict

from libs.core.models import ValidationIssue

from .errors import GenerationFailure

REQUIRED_SECTIONS = (
    "fullName",
    "contactInfo",
    "summary",
    "experience",
    "education",
    "skills",
    "projects",
    "certifications",
)
WRAPPER_KEY = "optimizedContent"
DEFAULT_MIN_SKILLS = 5

_GPA_RE = re.compile(r"\b(gpa|cgpa)\s*:?\s*(\d+\.?\d*)", re.IGNORECASE)


def extract_json(text: str) -> str:
    if not text:
        return ""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return ""
    return stripped[start : end + 1]


def parse_json_object(json_text: str) -> Dict[str, Any]:
    if not json_text:
        raise GenerationFailure("invalid_json")
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise GenerationFailure(f"invalid_json:{exc}") from exc
    if not isinstance(payload, dict):
        raise GenerationFailure("invalid_json:not_an_object")
    return payload


def parse_candidate(response_text: str) -> Dict[str, Any]:
    return parse_json_object(extract_json(response_text))


def resume_content(candidate: Any) -> Any:
    """Return the document fields whether or not the model kept the envelope."""
    if isinstance(candidate, dict) and WRAPPER_KEY in candidate:
        return candidate[WRAPPER_KEY]
    return candidate


def source_mentions_gpa(source_text: str) -> bool:
    return bool(_GPA_RE.search(source_text or ""))


def validate_resume(
    candidate: Any, source_text: str, *, min_skills: int = DEFAULT_MIN_SKILLS
) -> list[ValidationIssue]:
    if not isinstance(candidate, dict):
        return [ValidationIssue("root", "Output is not a valid JSON object")]
    if WRAPPER_KEY not in candidate and not all(key in candidate for key in REQUIRED_SECTIONS):
        return [ValidationIssue("root", f"Missing '{WRAPPER_KEY}' wrapper")]
    content = resume_content(candidate)
    if not isinstance(content, dict):
        return [ValidationIssue("root", f"'{WRAPPER_KEY}' must be a JSON object")]

    issues = [
        ValidationIssue(section, f"Missing required section: {section}")
        for section in REQUIRED_SECTIONS
        if section not in content
    ]

    if "skills" in content:
        skills = content["skills"]
        if not isinstance(skills, list):
            issues.append(ValidationIssue("skills", "Skills must be an array"))
        elif len(skills) < min_skills:
            issues.append(
                ValidationIssue(
                    "skills",
                    f"Too few skills ({len(skills)}). Extract at least {min_skills} relevant skills.",
                )
            )

    projects = content.get("projects")
    if isinstance(projects, list) and not projects:
        issues.append(
            ValidationIssue(
                "projects", "Projects array is empty. Populate with at least 1 project."
            )
        )

    experience = content.get("experience")
    if isinstance(experience, list):
        for idx, role in enumerate(experience):
            role = role if isinstance(role, dict) else {}
            if _is_blank(role.get("date")):
                issues.append(ValidationIssue(f"experience[{idx}]", "Missing date field"))
            if "points" in role and not _has_points(role["points"]):
                issues.append(ValidationIssue(f"experience[{idx}]", "Empty bullet points"))

    education = content.get("education")
    if (
        isinstance(education, list)
        and source_mentions_gpa(source_text)
        and not _education_has_score(education)
    ):
        issues.append(
            ValidationIssue(
                "education", "Original resume contains GPA but it was not extracted."
            )
        )

    return issues


def _education_has_score(education: list[Any]) -> bool:
    for entry in education:
        if not isinstance(entry, dict):
            continue
        for key in ("score", "gpa"):
            value = entry.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return True
            if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
                return True
    return False


def _has_points(points: Any) -> bool:
    return isinstance(points, list) and any(not _is_blank(point) for point in points)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False
