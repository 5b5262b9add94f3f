from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from libs.core import llm_provider, logging as core_logging

from .errors import CredentialError, GenerationFailure
from .floor import MAX_MIN_SKILLS

LOGGER = core_logging.get_logger("optimizer")

_DEFAULT_MODELS = {"gemini": "gemini-2.5-flash", "openai": "gpt-4.1-mini"}
_DEFAULT_TIMEOUT_S = 60.0
_DEFAULT_MAX_RETRIES = 0


def _parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _resolve_float(primary: str | None, fallback: str | None, default: float) -> float:
    parsed_primary = _parse_optional_float(primary)
    if parsed_primary is not None:
        return parsed_primary
    parsed_fallback = _parse_optional_float(fallback)
    if parsed_fallback is not None:
        return parsed_fallback
    return default


def _resolve_int(primary: str | None, fallback: str | None, default: int) -> int:
    parsed_primary = _parse_optional_int(primary)
    if parsed_primary is not None:
        return parsed_primary
    parsed_fallback = _parse_optional_int(fallback)
    if parsed_fallback is not None:
        return parsed_fallback
    return default


@dataclass(frozen=True)
class OptimizerConfig:
    provider: str = "gemini"
    api_key: str = ""
    model: str = _DEFAULT_MODELS["gemini"]
    base_url: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    timeout_s: float = _DEFAULT_TIMEOUT_S
    max_retries: int = _DEFAULT_MAX_RETRIES
    min_skills: int = 5
    max_estimated_lines: int = 50
    condense_target_lines: int = 45
    default_match_score: int = 80
    source_excerpt_chars: int = 1000
    repo_limit: int = 5

    def __post_init__(self) -> None:
        if not 1 <= self.min_skills <= MAX_MIN_SKILLS:
            raise ValueError(f"min_skills must be between 1 and {MAX_MIN_SKILLS}")

    @classmethod
    def from_env(cls) -> "OptimizerConfig":
        provider = os.getenv("LLM_PROVIDER", "gemini").strip().lower() or "gemini"
        prefix = "OPENAI" if provider == "openai" else "GEMINI"
        return cls(
            provider=provider,
            api_key=os.getenv(f"{prefix}_API_KEY", ""),
            model=os.getenv(f"{prefix}_MODEL", "") or _DEFAULT_MODELS.get(provider, ""),
            base_url=os.getenv(f"{prefix}_BASE_URL") or None,
            temperature=_parse_optional_float(os.getenv("LLM_TEMPERATURE")),
            max_output_tokens=_parse_optional_int(os.getenv("LLM_MAX_OUTPUT_TOKENS")),
            timeout_s=_resolve_float(
                os.getenv("OPTIMIZER_LLM_TIMEOUT_S"),
                os.getenv("LLM_TIMEOUT_S"),
                _DEFAULT_TIMEOUT_S,
            ),
            max_retries=_resolve_int(
                os.getenv("OPTIMIZER_LLM_MAX_RETRIES"),
                os.getenv("LLM_MAX_RETRIES"),
                _DEFAULT_MAX_RETRIES,
            ),
            min_skills=max(
                1, min(MAX_MIN_SKILLS, _resolve_int(os.getenv("OPTIMIZER_MIN_SKILLS"), None, 5))
            ),
            max_estimated_lines=_resolve_int(os.getenv("OPTIMIZER_MAX_LINES"), None, 50),
            condense_target_lines=_resolve_int(
                os.getenv("OPTIMIZER_CONDENSE_TARGET_LINES"), None, 45
            ),
            default_match_score=_resolve_int(
                os.getenv("OPTIMIZER_DEFAULT_MATCH_SCORE"), None, 80
            ),
            source_excerpt_chars=_resolve_int(
                os.getenv("OPTIMIZER_SOURCE_EXCERPT_CHARS"), None, 1000
            ),
            repo_limit=_resolve_int(os.getenv("GITHUB_REPO_LIMIT"), None, 5),
        )

    def with_api_key(self, api_key: str | None) -> "OptimizerConfig":
        if not isinstance(api_key, str) or not api_key.strip():
            return self
        return replace(self, api_key=api_key.strip())


def create_provider(config: OptimizerConfig) -> llm_provider.LLMProvider:
    try:
        return llm_provider.resolve_provider(
            config.provider,
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            timeout_s=config.timeout_s,
            max_retries=config.max_retries,
        )
    except llm_provider.LLMCredentialError as exc:
        raise CredentialError("llm_credential_missing") from exc
    except ValueError as exc:
        LOGGER.error("llm_provider_misconfigured", provider=config.provider, error=str(exc))
        raise GenerationFailure("llm_provider_misconfigured") from exc
