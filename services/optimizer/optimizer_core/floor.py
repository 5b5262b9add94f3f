from __future__ import annotations

import re
from typing import Any, Dict, Iterable

from libs.core import logging as core_logging
from libs.core.models import RepoSummary

LOGGER = core_logging.get_logger("optimizer")

MAX_BACKFILLED_PROJECTS = 3

# Display name -> pattern. Order is the backfill priority.
SKILL_PATTERNS: Dict[str, str] = {
    "Python": r"\bpython3?\b",
    "Java": r"\bjava\b(?!\s*script)",
    "JavaScript": r"\bjavascript\b|\bjs\b",
    "TypeScript": r"\btypescript\b",
    "Go": r"\bgolang\b",
    "C++": r"\bc\+\+",
    "C#": r"\bc#",
    "Rust": r"\brust\b",
    "SQL": r"\bsql\b|\bpostgres(?:ql)?\b|\bmysql\b",
    "React": r"\breact(?:\.js|js)?\b",
    "Node.js": r"\bnode(?:\.js|js)?\b",
    "Django": r"\bdjango\b",
    "FastAPI": r"\bfastapi\b",
    "Flask": r"\bflask\b",
    "AWS": r"\baws\b|\bamazon\s+web\s+services\b",
    "Azure": r"\bazure\b",
    "GCP": r"\bgcp\b|\bgoogle\s+cloud\b",
    "Docker": r"\bdocker\b",
    "Kubernetes": r"\bkubernetes\b|\bk8s\b",
    "Terraform": r"\bterraform\b",
    "CI/CD": r"\bci/cd\b|\bcontinuous\s+integration\b",
    "Git": r"\bgit\b|\bgithub\b|\bgitlab\b",
    "Linux": r"\blinux\b",
    "REST APIs": r"\brest(?:ful)?\b(?:\s+apis?)?",
    "GraphQL": r"\bgraphql\b",
    "Machine Learning": r"\bmachine\s+learning\b|\bml\b",
    "Data Analysis": r"\bdata\s+analy(?:sis|tics)\b",
    "Pandas": r"\bpandas\b",
    "TensorFlow": r"\btensorflow\b",
    "PyTorch": r"\bpytorch\b",
    "Kafka": r"\bkafka\b",
    "Redis": r"\bredis\b",
    "MongoDB": r"\bmongo(?:db)?\b",
    "HTML": r"\bhtml5?\b",
    "CSS": r"\bcss3?\b",
    "Agile": r"\bagile\b|\bscrum\b",
}

GENERIC_SKILLS = (
    "Communication",
    "Problem Solving",
    "Teamwork",
    "Time Management",
    "Adaptability",
    "Critical Thinking",
    "Collaboration",
    "Attention to Detail",
    "Project Management",
    "Technical Documentation",
    "Mentoring",
    "Stakeholder Management",
)

# The generic pool is the only guaranteed source, so it bounds the floor.
MAX_MIN_SKILLS = len(GENERIC_SKILLS)

_PROJECTS_HEADING_RE = re.compile(
    r"^\s*(?:(?:personal|selected|side|key|academic|notable)\s+)?projects\s*:?\s*$",
    re.IGNORECASE,
)
_SECTION_HEADING_RE = re.compile(
    r"^(?:[A-Z][A-Z&/ ]{2,40}|(?i:(?:work\s+|professional\s+)?experience|education|skills"
    r"|certifications|awards|languages|summary|publications))\s*:?$"
)
_PROJECT_LINE_RE = re.compile(
    r"^(?P<name>[^:|]{2,80}?)\s*(?::|\||\s[-\u2013\u2014]\s)\s*(?P<description>.+)$"
)
_BULLET_PREFIX_RE = re.compile(r"^[\-\*\u2022\u00b7\s]+")


def extract_keyword_skills(*texts: str) -> list[str]:
    """Match the fixed keyword list against each text in turn, in list priority order."""
    found: list[str] = []
    for text in texts:
        if not isinstance(text, str) or not text:
            continue
        for name, pattern in SKILL_PATTERNS.items():
            if name not in found and re.search(pattern, text, re.IGNORECASE):
                found.append(name)
    return found


def backfill_skills(
    skills: list[str], source_text: str, job_description: str, min_skills: int
) -> list[str]:
    result = list(skills)
    if len(result) >= min_skills:
        return result
    seen = {skill.strip().lower() for skill in result}
    candidates = extract_keyword_skills(source_text, job_description) + list(GENERIC_SKILLS)
    for candidate in candidates:
        if len(result) >= min_skills:
            break
        if candidate.lower() in seen:
            continue
        seen.add(candidate.lower())
        result.append(candidate)
    return result


def extract_source_projects(
    source_text: str, limit: int = MAX_BACKFILLED_PROJECTS
) -> list[dict]:
    """Read `name: description` lines under a projects heading in the source resume."""
    if not isinstance(source_text, str) or not source_text:
        return []
    projects: list[dict] = []
    in_section = False
    for raw_line in source_text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if _PROJECTS_HEADING_RE.match(line):
            in_section = True
            continue
        if not in_section:
            continue
        if _SECTION_HEADING_RE.match(line):
            break
        match = _PROJECT_LINE_RE.match(_BULLET_PREFIX_RE.sub("", line))
        if match is None:
            continue
        projects.append(
            {
                "name": match.group("name").strip(),
                "description": match.group("description").strip(),
            }
        )
        if len(projects) >= limit:
            break
    return projects


def enforce_content_floor(
    content: Dict[str, Any],
    *,
    source_text: str,
    job_description: str,
    repos: Iterable[RepoSummary] = (),
    min_skills: int = 5,
) -> Dict[str, Any]:
    floored = dict(content)

    skills = list(floored.get("skills") or [])
    if len(skills) < min_skills:
        floored["skills"] = backfill_skills(skills, source_text, job_description, min_skills)
        LOGGER.info(
            "skills_backfilled",
            before=len(skills),
            after=len(floored["skills"]),
        )

    if not floored.get("projects"):
        backfilled = [
            {"name": repo.name, "description": repo.description or ""}
            for repo in list(repos)[:MAX_BACKFILLED_PROJECTS]
        ]
        source = "repositories"
        if not backfilled:
            backfilled = extract_source_projects(source_text)
            source = "resume_text"
        floored["projects"] = backfilled
        if backfilled:
            LOGGER.info("projects_backfilled", count=len(backfilled), source=source)

    experience = []
    for role in floored.get("experience") or []:
        if not role.get("points"):
            role = dict(role)
            role["points"] = [_fallback_point(role)]
        experience.append(role)
    floored["experience"] = experience
    return floored


def _fallback_point(role: Dict[str, Any]) -> str:
    title = (role.get("title") or "").strip()
    company = (role.get("company") or "").strip()
    if title and company:
        return f"Served as {title} at {company}."
    if title:
        return f"Served as {title}."
    if company:
        return f"Contributed to team deliverables at {company}."
    return "Contributed to team deliverables."
