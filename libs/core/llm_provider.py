from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen
import time

_OPENAI_BASE_URL = "https://api.openai.com"
_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class LLMResponse:
    content: str


class LLMProviderError(Exception):
    pass


class LLMCredentialError(LLMProviderError):
    pass


class LLMProvider:
    timeout_s: float = 60.0

    def generate(self, prompt: str) -> LLMResponse:  # pragma: no cover - interface
        raise NotImplementedError


class OpenAIProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = _OPENAI_BASE_URL,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        timeout_s: float = 60.0,
        max_retries: int = 0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    def generate(self, prompt: str) -> LLMResponse:
        payload: Dict[str, Any] = {"model": self.model, "input": prompt}
        if self.temperature is not None and _model_supports_temperature(self.model):
            payload["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            payload["max_output_tokens"] = self.max_output_tokens
        attempts = self.max_retries + 1
        retried_without_temperature = False
        attempt = 0
        while attempt < attempts:
            request = Request(
                f"{self.base_url}/v1/responses",
                data=json.dumps(payload).encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                method="POST",
            )
            try:
                with urlopen(request, timeout=self.timeout_s) as response:
                    body = response.read().decode("utf-8")
                text = _extract_openai_output_text(json.loads(body))
                if not text:
                    raise LLMProviderError("OpenAI API returned empty output")
                return LLMResponse(content=text)
            except HTTPError as exc:
                detail = exc.read().decode("utf-8") if exc.fp else str(exc)
                if (
                    "temperature" in payload
                    and not retried_without_temperature
                    and _is_unsupported_temperature_error(detail)
                ):
                    payload.pop("temperature", None)
                    retried_without_temperature = True
                    continue
                if exc.code in {401, 403}:
                    raise LLMCredentialError(f"OpenAI API rejected credentials: {detail}") from exc
                if exc.code in _RETRYABLE_STATUS and attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    attempt += 1
                    continue
                raise LLMProviderError(f"OpenAI API error: {detail}") from exc
            except (URLError, TimeoutError) as exc:
                if attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    attempt += 1
                    continue
                raise LLMProviderError(f"OpenAI API connection error: {exc}") from exc
        raise LLMProviderError("OpenAI API request failed after retries")


class GeminiProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = _GEMINI_BASE_URL,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        timeout_s: float = 60.0,
        max_retries: int = 0,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_s = timeout_s
        self.max_retries = max_retries

    def generate(self, prompt: str) -> LLMResponse:
        generation_config: Dict[str, Any] = {"responseMimeType": "application/json"}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_output_tokens
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        url = f"{self.base_url}/v1beta/models/{self.model}:generateContent"
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            request = Request(
                url,
                data=json.dumps(payload).encode("utf-8"),
                headers={
                    "x-goog-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                method="POST",
            )
            try:
                with urlopen(request, timeout=self.timeout_s) as response:
                    body = response.read().decode("utf-8")
                text = _extract_gemini_output_text(json.loads(body))
                if not text:
                    raise LLMProviderError("Gemini API returned empty output")
                return LLMResponse(content=text)
            except HTTPError as exc:
                detail = exc.read().decode("utf-8") if exc.fp else str(exc)
                if exc.code in {401, 403} or _is_invalid_api_key_error(detail):
                    raise LLMCredentialError(f"Gemini API rejected credentials: {detail}") from exc
                if exc.code in _RETRYABLE_STATUS and attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    continue
                raise LLMProviderError(f"Gemini API error: {detail}") from exc
            except (URLError, TimeoutError) as exc:
                if attempt < attempts - 1:
                    time.sleep(min(2**attempt, 8))
                    continue
                raise LLMProviderError(f"Gemini API connection error: {exc}") from exc
        raise LLMProviderError("Gemini API request failed after retries")


def resolve_provider(
    provider_name: str,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    temperature: Optional[float] = None,
    max_output_tokens: Optional[int] = None,
    timeout_s: Optional[float] = None,
    max_retries: Optional[int] = None,
) -> LLMProvider:
    name = (provider_name or "gemini").strip().lower()
    if name not in {"gemini", "openai"}:
        raise ValueError(f"Unsupported LLM_PROVIDER: {provider_name}")
    if not api_key:
        raise LLMCredentialError(f"An API key is required when LLM_PROVIDER={name}")
    if not model:
        raise ValueError(f"A model name is required when LLM_PROVIDER={name}")
    provider_cls = OpenAIProvider if name == "openai" else GeminiProvider
    default_base_url = _OPENAI_BASE_URL if name == "openai" else _GEMINI_BASE_URL
    return provider_cls(
        api_key=api_key,
        model=model,
        base_url=base_url or default_base_url,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        timeout_s=timeout_s or 60.0,
        max_retries=max_retries or 0,
    )


def _extract_openai_output_text(response: Dict[str, Any]) -> str:
    parts: list[str] = []
    for item in response.get("output", []):
        if item.get("type") != "message":
            continue
        for content in item.get("content", []):
            if content.get("type") == "output_text":
                parts.append(content.get("text", ""))
    return "".join(parts).strip()


def _extract_gemini_output_text(response: Dict[str, Any]) -> str:
    candidates = response.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    parts = [part.get("text", "") for part in content.get("parts", []) if isinstance(part, dict)]
    return "".join(parts).strip()


def _model_supports_temperature(model: str) -> bool:
    normalized = (model or "").strip().lower()
    # GPT-5 responses currently reject temperature.
    return not normalized.startswith("gpt-5")


def _is_unsupported_temperature_error(detail: str) -> bool:
    lowered = (detail or "").lower()
    return "unsupported parameter" in lowered and "temperature" in lowered


def _is_invalid_api_key_error(detail: str) -> bool:
    lowered = (detail or "").lower()
    return "api key not valid" in lowered or "api_key_invalid" in lowered
