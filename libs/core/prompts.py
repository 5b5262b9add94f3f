from __future__ import annotations

import json
from typing import Any, Iterable

from .models import ValidationIssue

_TRUNCATION_MARKER = "... (truncated)"

_OUTPUT_SCHEMA = (
    "{\n"
    '  "optimizedContent": {\n'
    '    "fullName": "...",\n'
    '    "contactInfo": "...",\n'
    '    "summary": "...",\n'
    '    "experience": [{"title": "...", "company": "...", "date": "...", "points": ["..."]}],\n'
    '    "education": [{"degree": "...", "school": "...", "date": "...", "score": "..."}],\n'
    '    "skills": ["..."],\n'
    '    "certifications": ["..."],\n'
    '    "languages": ["..."],\n'
    '    "awards": ["..."],\n'
    '    "projects": [{"name": "...", "description": "..."}]\n'
    "  },\n"
    '  "matchScore": 85,\n'
    '  "analysis": [{"section": "...", "change": "...", "reason": "..."}]\n'
    "}\n"
)


def build_optimization_prompt(
    source_text: str,
    job_description: str,
    repo_summaries: str = "",
    *,
    min_skills: int = 5,
) -> str:
    repos_block = repo_summaries.strip() if isinstance(repo_summaries, str) else ""
    return (
        "You are an expert resume optimizer and a hiring manager for the target role.\n"
        "Take the original resume text and the job description and produce a completely "
        "optimized resume as a single JSON object.\n\n"
        "Optimization rules:\n"
        "- Output ONLY JSON (no prose, no markdown, no code fences).\n"
        "- The resume MUST fit on ONE PAGE. Be ruthless with brevity.\n"
        "- Summary: at most 40 words, focused on the value most relevant to the job.\n"
        "- Experience: keep the 3 to 4 most relevant roles, at most 3 short bullet points each.\n"
        "- Experience order: keep roles in the same order as the original resume.\n"
        "- Projects: at most 3 in total. Merge the original resume projects with the "
        "repository projects below and select the most relevant. If experience has 3 or more "
        "roles include only the top 1 to 2 projects. Descriptions at most 2 lines.\n"
        f"- Skills: list at least {min_skills} skills relevant to the job and supported by the resume.\n"
        "- Preserve dates, schools, degrees, company names and GPA or CGPA values exactly. "
        "Only optimize descriptive text. Put any GPA in the education score field.\n"
        "- Never invent employers, dates, certifications, or outcomes.\n"
        "- matchScore: relevance of the optimized resume to the job, integer 0 to 100.\n"
        "- analysis: explain the 3 key changes as section, change, reason.\n\n"
        f"Job description:\n{job_description.strip()}\n\n"
        f"Repository projects (JSON, may be empty):\n{repos_block or '[]'}\n\n"
        f"Original resume text:\n{source_text.strip()}\n\n"
        "Output format, return exactly this structure:\n"
        f"{_OUTPUT_SCHEMA}"
    )


def build_correction_prompt(
    candidate: Any,
    issues: Iterable[ValidationIssue],
    source_text: str,
    *,
    excerpt_chars: int = 1000,
) -> str:
    issue_lines = "\n".join(f"- [{issue.field}]: {issue.issue}" for issue in issues)
    source = source_text or ""
    excerpt = source[:excerpt_chars]
    if len(source) > excerpt_chars:
        excerpt = f"{excerpt}{_TRUNCATION_MARKER}"
    candidate_json = json.dumps(candidate, ensure_ascii=False, default=str)
    return (
        "VALIDATION FAILED\n\n"
        "Your previous JSON output had errors. Correct them now.\n\n"
        "Errors found:\n"
        f"{issue_lines}\n\n"
        "Instructions:\n"
        "1. Fix ONLY the errors listed above.\n"
        "2. Keep the rest of the data intact and unchanged.\n"
        "3. Return the COMPLETE corrected JSON object, not a diff or a fragment.\n"
        "4. Output ONLY the JSON object with no markdown, code fences, or commentary.\n\n"
        "Original resume text (for reference):\n"
        f"{excerpt}\n\n"
        "Previous JSON output to correct:\n"
        f"{candidate_json}\n"
    )


def build_condensing_prompt(candidate: Any, *, target_lines: int = 45) -> str:
    candidate_json = json.dumps(candidate, ensure_ascii=False, default=str)
    return (
        "The resume below is too long to fit on one page. Condense it.\n\n"
        f"Target: at most {target_lines} rendered lines.\n\n"
        "Rules:\n"
        "- Keep EVERY top-level section and key. Do not delete sections, only shorten content.\n"
        "- Summary: at most 40 words.\n"
        "- Experience: keep at most 4 roles, in the same order, with at most 3 short bullet points each.\n"
        "- Projects: keep at most 3, one-sentence descriptions.\n"
        "- Shorten bullets by removing filler words before dropping whole bullets.\n"
        "- Keep every skill, date, school, degree, company name, and GPA value exactly.\n"
        "- Return the exact same JSON schema, with no markdown, code fences, or commentary.\n\n"
        "Resume JSON to condense:\n"
        f"{candidate_json}\n"
    )
