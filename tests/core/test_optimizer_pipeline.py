from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
OPTIMIZER_SERVICE_ROOT = ROOT / "services" / "optimizer"
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(OPTIMIZER_SERVICE_ROOT))
from libs.core.llm_provider import LLMCredentialError, LLMProviderError  # noqa: E402
from libs.core.models import RepoSummary  # noqa: E402
from optimizer_core import (  # type: ignore  # noqa: E402
    CredentialError,
    GenerationFailure,
    InputError,
    OptimizerConfig,
    PipelineCancelled,
    ResumeOptimizer,
    estimate_lines,
    validate_resume,
)

SOURCE_TEXT = (
    "Jane Doe | jane@example.com\n"
    "Software Engineer, Acme, 2021 - Present\n"
    "Junior Engineer, Globex, 2019 - 2021\n"
    "BS Computer Science, State University, 2019, GPA: 3.9\n"
    "Skills: Python, SQL, Docker, AWS, FastAPI\n"
)
JOB_DESCRIPTION = "Senior Python engineer with AWS and Kubernetes experience."


class _FakeLLMResponse:
    def __init__(self, content: str) -> None:
        self.content = content


class _FakeProvider:
    def __init__(self, outputs: list[object]) -> None:
        self._outputs = list(outputs)
        self.prompts: list[str] = []

    def generate(self, _prompt: str) -> _FakeLLMResponse:
        self.prompts.append(_prompt)
        if not self._outputs:
            raise RuntimeError("no_more_outputs")
        next_item = self._outputs.pop(0)
        if isinstance(next_item, Exception):
            raise next_item
        if isinstance(next_item, dict):
            next_item = json.dumps(next_item)
        return _FakeLLMResponse(str(next_item))


def _content(**overrides: object) -> dict:
    content = {
        "fullName": "Jane Doe",
        "contactInfo": "jane@example.com",
        "summary": "Backend engineer shipping Python services on AWS.",
        "experience": [
            {
                "title": "Software Engineer",
                "company": "Acme",
                "date": "2021 - Present",
                "points": ["Built Python services on AWS."],
            },
            {
                "title": "Junior Engineer",
                "company": "Globex",
                "date": "2019 - 2021",
                "points": ["Maintained internal APIs."],
            },
        ],
        "education": [
            {
                "degree": "BS Computer Science",
                "school": "State University",
                "date": "2019",
                "score": "3.9",
            }
        ],
        "skills": ["Python", "SQL", "Docker", "AWS", "FastAPI"],
        "projects": [{"name": "ledger", "description": "Double-entry ledger service."}],
        "certifications": [],
    }
    content.update(overrides)
    return content


def _envelope(content: dict | None = None, score: int = 84) -> dict:
    return {
        "optimizedContent": content if content is not None else _content(),
        "matchScore": score,
        "analysis": [{"section": "Summary", "change": "Tightened", "reason": "Focus"}],
    }


def _long_content() -> dict:
    return _content(
        summary=" ".join(["impact"] * 200),
        experience=[
            {
                "title": f"Engineer {idx}",
                "company": f"Company {idx}",
                "date": f"{2010 + idx} - {2011 + idx}",
                "points": [f"Delivered outcome {n}" for n in range(4)],
            }
            for idx in range(5)
        ],
        skills=[f"skill-{n}" for n in range(12)],
        projects=[{"name": f"p{n}", "description": "d"} for n in range(3)],
        education=[
            {"degree": "BS", "school": "State University", "date": "2010", "score": "3.9"},
            {"degree": "MS", "school": "Tech Institute", "date": "2012"},
        ],
    )


def _optimizer(provider: _FakeProvider, **config: object) -> ResumeOptimizer:
    return ResumeOptimizer(provider, OptimizerConfig(**config))


def test_clean_candidate_needs_a_single_model_call() -> None:
    provider = _FakeProvider([_envelope()])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 1
    assert result.match_score == 84
    assert result.optimized_content.full_name == "Jane Doe"
    assert result.analysis[0].section == "Summary"


def test_code_fenced_response_is_parsed() -> None:
    provider = _FakeProvider(["```json\n" + json.dumps(_envelope()) + "\n```"])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert result.optimized_content.skills == ["Python", "SQL", "Docker", "AWS", "FastAPI"]


def test_missing_gpa_and_skills_are_corrected() -> None:
    first = _content(
        skills=["Python", "SQL", "Docker"],
        education=[{"degree": "BS Computer Science", "school": "State University", "date": "2019"}],
    )
    first_envelope = _envelope(first)
    issues = validate_resume(first_envelope, SOURCE_TEXT)
    assert {issue.field for issue in issues} == {"skills", "education"}
    assert len(issues) == 2

    corrected = _envelope(_content(skills=["Python", "SQL", "Docker", "AWS", "FastAPI"]))
    provider = _FakeProvider([first_envelope, corrected])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)

    assert len(provider.prompts) == 2
    correction_prompt = provider.prompts[1]
    assert "[skills]" in correction_prompt
    assert "[education]" in correction_prompt
    final = result.model_dump(by_alias=True)
    assert validate_resume(final, SOURCE_TEXT) == []
    assert result.optimized_content.education[0].score == "3.9"
    assert len(result.optimized_content.skills) == 5


def test_correction_is_adopted_without_revalidation() -> None:
    broken = _content(projects=[])
    still_broken = _content(projects=[], summary="Corrected summary.")
    provider = _FakeProvider([_envelope(broken), _envelope(still_broken)])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert result.optimized_content.summary == "Corrected summary."


def test_failed_correction_keeps_original_candidate() -> None:
    original = _content(skills=["Python", "SQL", "Docker", "AWS"], summary="Original summary.")
    provider = _FakeProvider([_envelope(original, score=71), LLMProviderError("timeout")])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert result.optimized_content.summary == "Original summary."
    assert result.optimized_content.skills[:4] == ["Python", "SQL", "Docker", "AWS"]
    assert result.match_score == 71


def test_unparsable_correction_keeps_original_candidate() -> None:
    original = _content(projects=[], summary="Original summary.")
    provider = _FakeProvider([_envelope(original), '{"optimizedContent": {"summary": "x"'])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert result.optimized_content.summary == "Original summary."


def test_oversized_candidate_is_condensed() -> None:
    long_envelope = _envelope(_long_content())
    assert estimate_lines(long_envelope) >= 50
    short = _content(summary="Condensed summary.")
    provider = _FakeProvider([long_envelope, _envelope(short)])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert "rendered lines" in provider.prompts[1]
    assert result.optimized_content.summary == "Condensed summary."


def test_condensed_candidate_failing_validation_is_rejected() -> None:
    long_content = _long_content()
    condensed_but_broken = _content(summary="Too short now.", skills=["Python"])
    provider = _FakeProvider([_envelope(long_content), _envelope(condensed_but_broken)])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert result.optimized_content.summary == long_content["summary"]
    assert len(result.optimized_content.experience) == 5


def test_condense_failure_keeps_precondensed_candidate() -> None:
    long_content = _long_content()
    provider = _FakeProvider([_envelope(long_content), RuntimeError("network down")])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert result.optimized_content.summary == long_content["summary"]


def test_correction_then_condense_uses_at_most_three_calls() -> None:
    broken_long = _long_content()
    broken_long["projects"] = []
    provider = _FakeProvider(
        [
            _envelope(broken_long),
            _envelope(_long_content()),
            _envelope(_content()),
            _envelope(_content()),
        ]
    )
    _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 3


def test_every_call_failing_after_primary_still_bounded() -> None:
    broken_long = _long_content()
    broken_long["skills"] = ["Python"]
    provider = _FakeProvider(
        [_envelope(broken_long), RuntimeError("down"), RuntimeError("down"), RuntimeError("x")]
    )
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 3
    assert len(result.optimized_content.skills) >= 5


def test_primary_network_error_is_terminal() -> None:
    provider = _FakeProvider([LLMProviderError("connection reset")])
    with pytest.raises(GenerationFailure):
        _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 1


def test_primary_malformed_json_is_terminal_without_retry() -> None:
    provider = _FakeProvider(["not json at all", _envelope()])
    with pytest.raises(GenerationFailure):
        _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 1


def test_rejected_credential_is_reported_distinctly() -> None:
    provider = _FakeProvider([LLMCredentialError("API key not valid")])
    with pytest.raises(CredentialError) as excinfo:
        _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert excinfo.value.status_code == 401


@pytest.mark.parametrize(
    ("source_text", "job_description"),
    [("", JOB_DESCRIPTION), ("   ", JOB_DESCRIPTION), (SOURCE_TEXT, ""), (SOURCE_TEXT, None)],
)
def test_missing_inputs_fail_before_any_model_call(source_text, job_description) -> None:
    provider = _FakeProvider([_envelope()])
    with pytest.raises(InputError):
        _optimizer(provider).optimize(source_text, job_description)
    assert provider.prompts == []


def test_final_document_never_has_fewer_than_five_skills() -> None:
    sparse = _content(skills=["Python"])
    provider = _FakeProvider([_envelope(sparse), _envelope(sparse)])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    skills = result.optimized_content.skills
    assert len(skills) >= 5
    assert skills[0] == "Python"
    assert "SQL" in skills


def test_flattened_response_is_normalized_with_default_score() -> None:
    provider = _FakeProvider([_content()])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 1
    assert result.match_score == 80
    assert result.analysis == []


def test_repositories_are_offered_to_the_model_and_fill_empty_projects() -> None:
    repos = [RepoSummary(name="ledger-svc", description="Ledger service", stars=12)]
    without_projects = _content(projects=[])
    provider = _FakeProvider([_envelope(without_projects), _envelope(without_projects)])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION, repos)
    assert "ledger-svc" in provider.prompts[0]
    assert [project.name for project in result.optimized_content.projects] == ["ledger-svc"]


def test_experience_order_matches_model_output() -> None:
    provider = _FakeProvider([_envelope()])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert [role.company for role in result.optimized_content.experience] == ["Acme", "Globex"]


def test_cancelled_request_makes_no_model_call() -> None:
    provider = _FakeProvider([_envelope()])
    cancel_event = threading.Event()
    cancel_event.set()
    with pytest.raises(PipelineCancelled):
        _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION, cancel_event=cancel_event)
    assert provider.prompts == []


def test_cancellation_mid_pipeline_stops_further_stages() -> None:
    cancel_event = threading.Event()

    class _CancellingProvider(_FakeProvider):
        def generate(self, _prompt: str) -> _FakeLLMResponse:
            response = super().generate(_prompt)
            cancel_event.set()
            return response

    provider = _CancellingProvider([_envelope(_content(projects=[])), _envelope()])
    with pytest.raises(PipelineCancelled):
        _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION, cancel_event=cancel_event)
    assert len(provider.prompts) == 1


def test_plain_string_provider_output_is_accepted() -> None:
    class _StringProvider:
        def __init__(self) -> None:
            self.calls = 0

        def generate(self, _prompt: str) -> str:
            self.calls += 1
            return json.dumps(_envelope())

    provider = _StringProvider()
    result = ResumeOptimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert provider.calls == 1
    assert result.match_score == 84


def test_overflowing_match_score_still_returns_document() -> None:
    raw = json.dumps(_envelope()).replace('"matchScore": 84', '"matchScore": 1e999')
    provider = _FakeProvider([raw])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert result.match_score == 100
    assert result.optimized_content.full_name == "Jane Doe"


def test_correction_timeout_keeps_original_candidate() -> None:
    original = _content(skills=["Python", "SQL", "Docker"], summary="Original summary.")
    provider = _FakeProvider([_envelope(original), TimeoutError("timed out")])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert result.optimized_content.summary == "Original summary."


def test_condense_timeout_keeps_precondensed_candidate() -> None:
    long_content = _long_content()
    provider = _FakeProvider([_envelope(long_content), TimeoutError("timed out")])
    result = _optimizer(provider).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(provider.prompts) == 2
    assert result.optimized_content.summary == long_content["summary"]


def test_projects_fall_back_to_source_section_when_correction_fails() -> None:
    source_text = SOURCE_TEXT + "PROJECTS\nledger-svc: double-entry ledger service in Python\n"
    provider = _FakeProvider([_envelope(_content(projects=[])), RuntimeError("down")])
    result = _optimizer(provider).optimize(source_text, JOB_DESCRIPTION)
    projects = result.optimized_content.projects
    assert [(project.name, project.description) for project in projects] == [
        ("ledger-svc", "double-entry ledger service in Python")
    ]


def test_configured_skill_floor_above_generic_pool_size_is_met() -> None:
    provider = _FakeProvider([_envelope(_content(skills=[])), RuntimeError("down")])
    result = _optimizer(provider, min_skills=8).optimize(SOURCE_TEXT, JOB_DESCRIPTION)
    assert len(result.optimized_content.skills) == 8


def test_skill_floor_beyond_fallback_pool_is_rejected() -> None:
    with pytest.raises(ValueError):
        OptimizerConfig(min_skills=50)
