from __future__ import annotations

import math
from typing import Any

from .validation import resume_content

HEADER_LINES = 3
SECTION_HEADER_LINES = 6
SUMMARY_WORDS_PER_LINE = 15
SKILLS_PER_LINE = 6
CERTIFICATIONS_PER_LINE = 2
LINES_PER_ROLE = 2
LINES_PER_BULLET = 1.5
LINES_PER_PROJECT = 2
LINES_PER_EDUCATION = 2


def estimate_lines(candidate: Any) -> int:
    """Estimate rendered page length of a resume from its field sizes.

    Each fractional term is rounded up on its own before summation. The value only
    gates the condensing pass; it is not a typographic measurement.
    """
    content = resume_content(candidate)
    if not isinstance(content, dict):
        content = {}

    lines = HEADER_LINES

    summary = content.get("summary")
    if isinstance(summary, str):
        # Whitespace tokens; a blank summary costs nothing.
        lines += math.ceil(len(summary.split()) / SUMMARY_WORDS_PER_LINE)

    lines += math.ceil(_count(content.get("skills")) / SKILLS_PER_LINE)

    experience = content.get("experience")
    if isinstance(experience, list):
        bullets = sum(
            _count(role.get("points")) for role in experience if isinstance(role, dict)
        )
        lines += LINES_PER_ROLE * len(experience)
        lines += math.ceil(LINES_PER_BULLET * bullets)

    lines += LINES_PER_PROJECT * _count(content.get("projects"))
    lines += LINES_PER_EDUCATION * _count(content.get("education"))
    lines += math.ceil(_count(content.get("certifications")) / CERTIFICATIONS_PER_LINE)

    return lines + SECTION_HEADER_LINES


def _count(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0
