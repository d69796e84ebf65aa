"""Pydantic schemas for cycle settings and API responses."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_LABEL = "INBOX"
DEFAULT_LABEL_DESCRIPTION = "Others"
DEFAULT_BATCH_SIZE = 5
DEFAULT_TRIGGER_INTERVAL_MINUTES = 10

_FALSY_DEFAULTS = {
    "batch_size": DEFAULT_BATCH_SIZE,
    "trigger_interval_minutes": DEFAULT_TRIGGER_INTERVAL_MINUTES,
}


class ConfigurationError(ValueError):
    """Cycle settings are missing or malformed; the cycle must not start."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = problems
        super().__init__("Invalid triage settings: " + "; ".join(problems))


# ── Cycle settings ────────────────────────────────────────


class LabelDescriptor(BaseModel):
    """A mailbox label name and the description shown to the classifier."""

    label: str = Field(..., min_length=1)
    description: str = ""


class TriageSettings(BaseModel):
    """Validated settings for one triage cycle.

    Accepts snake_case or camelCase keys (``handlerName``, ``apiKey``,
    ``labelDescriptors``, ``batchSize``, ``triggerIntervalMinutes``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    handler_name: str
    api_key: SecretStr
    label_descriptors: List[LabelDescriptor]
    batch_size: int = Field(DEFAULT_BATCH_SIZE, ge=1)
    trigger_interval_minutes: int = Field(DEFAULT_TRIGGER_INTERVAL_MINUTES, ge=1)

    @field_validator("handler_name")
    @classmethod
    def _require_handler_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Please set handlerName.")
        return v

    @field_validator("api_key")
    @classmethod
    def _require_api_key(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("Please set apiKey.")
        return v

    @field_validator("batch_size", "trigger_interval_minutes", mode="before")
    @classmethod
    def _default_when_falsy(cls, v: object, info: ValidationInfo) -> object:
        if not v:
            return _FALSY_DEFAULTS[info.field_name]
        return v

    @field_validator("label_descriptors")
    @classmethod
    def _ensure_default_label(cls, v: List[LabelDescriptor]) -> List[LabelDescriptor]:
        if any(d.label == DEFAULT_LABEL for d in v):
            return list(v)
        return [
            *v,
            LabelDescriptor(label=DEFAULT_LABEL, description=DEFAULT_LABEL_DESCRIPTION),
        ]

    @classmethod
    def load(cls, raw: "TriageSettings | Mapping[str, Any] | None") -> "TriageSettings":
        """Validate *raw* settings, raising ``ConfigurationError`` on failure."""
        if isinstance(raw, TriageSettings):
            return raw
        if not isinstance(raw, Mapping):
            raise ConfigurationError(["settings must be a mapping"])
        try:
            return cls.model_validate(dict(raw))
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ConfigurationError(problems) from exc

    @property
    def label_names(self) -> List[str]:
        return [d.label for d in self.label_descriptors]


# ── API schemas ───────────────────────────────────────────


class CycleResultOut(BaseModel):
    message: str
    threads_fetched: int
    batches: int
    failed_batches: int
    threads_labeled: int
    total_tokens: int


class TriggerOut(BaseModel):
    id: int
    handler_name: str
    interval_minutes: int
    next_fire_at: Optional[datetime] = None


class CycleStateOut(BaseModel):
    watermark_ms: Optional[int] = None
    watermark_at: Optional[datetime] = None
    triggers: List[TriggerOut] = []
