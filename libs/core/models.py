from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ResumeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ExperienceEntry(_ResumeModel):
    title: Optional[str] = None
    company: Optional[str] = None
    date: Optional[str] = None
    points: List[str] = Field(default_factory=list)


class EducationEntry(_ResumeModel):
    degree: Optional[str] = None
    school: Optional[str] = None
    date: Optional[str] = None
    score: Optional[str] = None


class ProjectEntry(_ResumeModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ResumeDocument(_ResumeModel):
    full_name: Optional[str] = Field(default=None, alias="fullName")
    contact_info: Optional[str] = Field(default=None, alias="contactInfo")
    summary: Optional[str] = None
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    projects: List[ProjectEntry] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    awards: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)


class AnalysisEntry(_ResumeModel):
    section: str = ""
    change: str = ""
    reason: str = ""


class OptimizationResult(_ResumeModel):
    optimized_content: ResumeDocument = Field(alias="optimizedContent")
    match_score: int = Field(alias="matchScore", ge=0, le=100)
    analysis: List[AnalysisEntry] = Field(default_factory=list)

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_match_score(cls, value: Any) -> int:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0
        if math.isnan(score):
            return 0
        return int(round(max(0.0, min(100.0, score))))


class RepoSummary(BaseModel):
    name: str
    description: Optional[str] = None
    language: Optional[str] = None
    stars: int = 0
    url: str = ""


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    issue: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "issue": self.issue}
