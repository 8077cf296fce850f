from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized config.

    Key idea:
    - read from env (TENDERWATCH_*) or a local .env first, so tests/CI can override,
    - otherwise default to local dev values,
    - resolved once and frozen for the process lifetime.
    """

    model_config = SettingsConfigDict(
        env_prefix="TENDERWATCH_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # SQLite file by default (FTS5 ships with the stdlib driver)
    db_url: str = "sqlite:///data/tenderwatch.db"

    # PNCP consulta API
    source_base_url: str = "https://pncp.gov.br/api/consulta"
    source_timeout_s: float = 30.0
    source_page_size: int = Field(default=50, ge=10, le=500)
    source_max_retries: int = Field(default=3, ge=1)
    source_backoff_base_s: float = 1.0
    source_backoff_cap_s: float = 30.0

    # collection axes
    categories: list[int] = [6, 8, 4]
    regions: list[str] = []
    keywords: list[str] = []
    collect_lookback_days: int = Field(default=1, ge=1)
    interval_minutes: int = 30

    # LLM (classifier + deep analysis): none/stub/anthropic; "none" means keyword fallback only
    llm_provider: str = "none"
    anthropic_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com"
    llm_timeout_s: float = 60.0
    classifier_model: str = "claude-haiku-4-5-20251001"
    analysis_model: str = "claude-sonnet-4-5-20250929"

    # relevance scoring
    semantic_matching: bool = True
    relevance_threshold: int = Field(default=60, ge=0, le=100)
    classifier_max_per_cycle: int = Field(default=20, ge=0)
    classifier_daily_limit: int = Field(default=200, ge=0)
    scoring_concurrency: int = Field(default=3, ge=1)

    # deep analysis
    auto_analyze: bool = False
    analysis_max_per_day: int = Field(default=50, ge=0)
    analysis_top_n: int = Field(default=5, ge=0)

    # notification channels
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_api_url: str = "https://api.telegram.org"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_starttls: bool = True
    email_from: str | None = None
    email_to: list[str] = []

    # housekeeping
    document_warning_days: int = Field(default=30, ge=0)
    chat_retention_days: int = Field(default=90, ge=1)

    # logging
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("interval_minutes")
    @classmethod
    def _check_interval(cls, v: int) -> int:
        if not 1 <= v <= 1440:
            raise ValueError("interval_minutes must be between 1 and 1440")
        return v

    @field_validator("regions")
    @classmethod
    def _upper_regions(cls, v: list[str]) -> list[str]:
        return [r.strip().upper() for r in v if r.strip()]

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.email_from and self.email_to)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    return Settings()
