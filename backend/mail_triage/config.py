"""Application configuration with Pydantic Settings validation."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SAMPLE_LABELS: list[dict[str, str]] = [
    {
        "label": "academic",
        "description": "Related to university, laboratory, research, education, and etc.",
    },
    {
        "label": "commission",
        "description": "Related to a commission, a request, a job offer, orders, and etc.",
    },
    {
        "label": "advertisement",
        "description": "Related to advertisement, new product, and etc.",
    },
    {"label": "INBOX", "description": "Others"},
]


class AppConfig(BaseSettings):
    """All application settings, loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── IMAP ──────────────────────────────────────────────
    imap_host: str = "imap.gmail.com"
    imap_port: int = 993
    email_username: str
    email_password: SecretStr
    inbox_folder: str = "INBOX"
    all_mail_folder: str = "[Gmail]/All Mail"
    imap_timeout_sec: int = 30

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite:///mail_triage.db"

    # ── LLM ───────────────────────────────────────────────
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: SecretStr = SecretStr("")
    openai_api_key: SecretStr = SecretStr("")  # backward compat
    llm_timeout_sec: int = 60

    # ── Triage cycle ──────────────────────────────────────
    handler_name: str = "triage_cycle"
    label_descriptors: list[dict[str, Any]] = _SAMPLE_LABELS
    batch_size: int = 5
    trigger_interval_minutes: int = 10

    # ── Trigger dispatcher ────────────────────────────────
    dispatcher_enabled: bool = True
    dispatcher_poll_sec: int = 30

    # ── Server ────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Logging ───────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False

    # ── Validators ────────────────────────────────────────
    @field_validator("dispatcher_enabled", "log_json", mode="before")
    @classmethod
    def parse_bool(cls, v: object) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in {"1", "true", "yes", "on"}
        return bool(v)

    @model_validator(mode="after")
    def _resolve_api_key(self) -> "AppConfig":
        """Fall back to OPENAI_API_KEY if LLM_API_KEY is empty."""
        if not self.llm_api_key.get_secret_value() and self.openai_api_key.get_secret_value():
            self.llm_api_key = self.openai_api_key
        return self

    def triage_settings(self) -> dict[str, Any]:
        """Raw cycle settings, validated later by ``TriageSettings.load``."""
        return {
            "handler_name": self.handler_name,
            "api_key": self.llm_api_key.get_secret_value(),
            "label_descriptors": [dict(d) for d in self.label_descriptors],
            "batch_size": self.batch_size,
            "trigger_interval_minutes": self.trigger_interval_minutes,
        }


def get_config() -> AppConfig:
    """Load and return validated application config."""
    return AppConfig()  # type: ignore[call-arg]
