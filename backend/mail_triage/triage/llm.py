"""Generative-text classifier with provider abstraction."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import structlog

from mail_triage.config import AppConfig

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClassifierResponse:
    """Decoded model output plus token accounting for one call.

    ``result`` is whatever the model produced after JSON decoding; it is not
    checked against the result schema here.
    """

    result: Any = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ClassifierProvider(Protocol):
    """Protocol that any classification backend must implement."""

    def classify(self, prompt: str) -> ClassifierResponse: ...


# ── OpenAI Provider ───────────────────────────────────────


class OpenAIClassifier:
    """OpenAI-backed classifier using JSON mode."""

    # JSON mode only yields top-level objects, so the array travels in an envelope.
    _SYSTEM_PROMPT = (
        "You label emails. Reply with a JSON object of the form "
        '{"results": [...]} where the array is exactly the output the user asks for.'
    )
    _ENVELOPE_KEY = "results"

    def __init__(self, config: AppConfig, api_key: str, client: Optional[Any] = None) -> None:
        self._config = config
        if client is None:
            try:
                from openai import OpenAI
            except ImportError as exc:
                raise RuntimeError(
                    "openai package is required for the openai provider — pip install openai"
                ) from exc
            client = OpenAI(
                api_key=api_key,
                timeout=config.llm_timeout_sec,
                max_retries=0,  # A failed batch is retried by the next cycle
            )
        self._client = client

    def classify(self, prompt: str) -> ClassifierResponse:
        cfg = self._config
        resp = self._client.chat.completions.create(
            model=cfg.llm_model,
            timeout=cfg.llm_timeout_sec,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": self._SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )

        content = (resp.choices[0].message.content or "").strip()
        result: Any = None
        if content:
            try:
                result = json.loads(content)
            except json.JSONDecodeError as exc:
                logger.warning("llm_response_not_json", error=str(exc), content=content[:200])
                result = content
        if isinstance(result, dict) and self._ENVELOPE_KEY in result:
            result = result[self._ENVELOPE_KEY]

        usage = getattr(resp, "usage", None)
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        total_tokens = int(getattr(usage, "total_tokens", 0) or 0) or prompt_tokens + completion_tokens

        logger.debug(
            "llm_classified",
            model=cfg.llm_model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        return ClassifierResponse(
            result=result,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        )


# ── Factory ───────────────────────────────────────────────

_PROVIDERS: dict[str, type] = {
    "openai": OpenAIClassifier,
}


def create_classifier(config: AppConfig, api_key: str) -> ClassifierProvider:
    """Instantiate the configured classifier provider."""
    provider_cls = _PROVIDERS.get(config.llm_provider.lower())
    if provider_cls is None:
        raise ValueError(
            f"Unknown LLM provider: {config.llm_provider!r}. "
            f"Available: {', '.join(_PROVIDERS)}"
        )
    return provider_cls(config, api_key)
