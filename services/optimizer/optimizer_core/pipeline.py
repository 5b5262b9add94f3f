from __future__ import annotations

import threading
import time
from typing import Any, Dict, Iterable, Optional

from libs.core import llm_provider, logging as core_logging, prompts
from libs.core.models import OptimizationResult, RepoSummary
from libs.tools.github_repos import serialize_repos

from .config import OptimizerConfig
from .errors import CredentialError, GenerationFailure, InputError, PipelineCancelled
from .estimate import estimate_lines
from .floor import enforce_content_floor
from .normalize import normalize_envelope
from .validation import WRAPPER_KEY, parse_candidate, validate_resume

LOGGER = core_logging.get_logger("optimizer")


class ResumeOptimizer:
    """Generate, validate, correct, and condense a tailored resume.

    One request makes at most three model calls: the primary generation, one
    correction when validation finds defects, and one condensing pass when the
    estimated length is over budget. Correction and condensing failures fall back
    to the last usable candidate; only the primary call can fail the request.
    """

    def __init__(self, provider: Any, config: OptimizerConfig | None = None) -> None:
        self.provider = provider
        self.config = config or OptimizerConfig()

    def optimize(
        self,
        source_text: str,
        job_description: str,
        repos: Optional[Iterable[RepoSummary]] = None,
        *,
        repo_summaries: str = "",
        cancel_event: Optional[threading.Event] = None,
    ) -> OptimizationResult:
        if not isinstance(source_text, str) or not source_text.strip():
            raise InputError("resume_text_missing")
        if not isinstance(job_description, str) or not job_description.strip():
            raise InputError("job_description_missing")
        repo_list = list(repos or [])
        if not repo_summaries:
            repo_summaries = serialize_repos(repo_list)
        run = _PipelineRun(self.provider, cancel_event)

        prompt = prompts.build_optimization_prompt(
            source_text,
            job_description,
            repo_summaries,
            min_skills=self.config.min_skills,
        )
        candidate = run.generate_candidate(prompt, stage="primary")

        candidate = self._correct(run, candidate, source_text)
        candidate = self._condense(run, candidate, source_text)

        run.check_cancelled()
        envelope = normalize_envelope(
            candidate, default_match_score=self.config.default_match_score
        )
        envelope[WRAPPER_KEY] = enforce_content_floor(
            envelope[WRAPPER_KEY],
            source_text=source_text,
            job_description=job_description,
            repos=repo_list,
            min_skills=self.config.min_skills,
        )
        LOGGER.info(
            "resume_optimization_finished",
            model_calls=run.calls,
            match_score=envelope["matchScore"],
        )
        return OptimizationResult.model_validate(envelope)

    def _correct(
        self, run: "_PipelineRun", candidate: Dict[str, Any], source_text: str
    ) -> Dict[str, Any]:
        issues = validate_resume(candidate, source_text, min_skills=self.config.min_skills)
        if not issues:
            return candidate
        LOGGER.info(
            "resume_validation_failed",
            stage="primary",
            issue_count=len(issues),
            fields=[issue.field for issue in issues],
        )
        prompt = prompts.build_correction_prompt(
            candidate,
            issues,
            source_text,
            excerpt_chars=self.config.source_excerpt_chars,
        )
        try:
            corrected = run.generate_candidate(prompt, stage="correction")
        except (GenerationFailure, CredentialError) as exc:
            LOGGER.warning("resume_correction_failed", error=exc.detail)
            return candidate
        # Adopted without re-validation so the correction costs exactly one call.
        LOGGER.info("resume_correction_adopted")
        return corrected

    def _condense(
        self, run: "_PipelineRun", candidate: Dict[str, Any], source_text: str
    ) -> Dict[str, Any]:
        estimated = estimate_lines(candidate)
        if estimated <= self.config.max_estimated_lines:
            return candidate
        LOGGER.info(
            "resume_condense_started",
            estimated_lines=estimated,
            max_lines=self.config.max_estimated_lines,
        )
        prompt = prompts.build_condensing_prompt(
            candidate, target_lines=self.config.condense_target_lines
        )
        try:
            condensed = run.generate_candidate(prompt, stage="condense")
        except (GenerationFailure, CredentialError) as exc:
            LOGGER.warning("resume_condense_failed", error=exc.detail)
            return candidate
        issues = validate_resume(condensed, source_text, min_skills=self.config.min_skills)
        if issues:
            LOGGER.warning(
                "resume_condense_rejected",
                issue_count=len(issues),
                fields=[issue.field for issue in issues],
            )
            return candidate
        LOGGER.info("resume_condense_adopted", estimated_lines=estimate_lines(condensed))
        return condensed


class _PipelineRun:
    def __init__(self, provider: Any, cancel_event: Optional[threading.Event]) -> None:
        self.provider = provider
        self.cancel_event = cancel_event
        self.calls = 0

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled()

    def generate_candidate(self, prompt: str, *, stage: str) -> Dict[str, Any]:
        self.check_cancelled()
        self.calls += 1
        response = _generate(self.provider, prompt, stage=stage)
        self.check_cancelled()
        content = response if isinstance(response, str) else getattr(response, "content", "")
        return parse_candidate(content or "")


def _generate(provider: Any, prompt: str, *, stage: str) -> Any:
    started_at = time.monotonic()
    try:
        response = provider.generate(prompt)
    except llm_provider.LLMCredentialError as exc:
        LOGGER.warning("llm_credential_rejected", stage=stage, error=str(exc))
        raise CredentialError("llm_credential_invalid") from exc
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning(
            "llm_generate_failed",
            stage=stage,
            provider_type=provider.__class__.__name__,
            provider_model=_provider_model(provider),
            prompt_chars=int(len(prompt)),
            timeout_s=getattr(provider, "timeout_s", None),
            duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
            error=str(exc),
        )
        raise GenerationFailure(f"llm_generate_failed:{stage}") from exc
    LOGGER.info(
        "llm_generate_finished",
        stage=stage,
        provider_type=provider.__class__.__name__,
        provider_model=_provider_model(provider),
        prompt_chars=int(len(prompt)),
        duration_ms=int(max(0.0, time.monotonic() - started_at) * 1000),
    )
    return response


def _provider_model(provider: Any) -> str:
    model = getattr(provider, "model", None)
    if isinstance(model, str) and model.strip():
        return model.strip()
    return ""
