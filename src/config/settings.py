# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for the engine budgets, the run store backend,
the LLM provider used by the report steps, and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === LLM PROVIDER ===
    llm_provider: Literal["anthropic", "openai"] = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 4096

    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # === STEP ENGINE ===
    step_time_budget_ms: int = 7000
    # Comma-separated "step_id=ms" overrides, e.g. "assessment=12000"
    step_time_budgets: str = ""
    max_advances: int = 20
    progress_queue_size: int = 100

    # === PERSISTENCE ===
    store_backend: Literal["json", "sqlite"] = "json"
    store_root: Path = Path("~/.gapflow/runs")
    persist_timeout_s: float = 5.0
    persist_max_retries: int = 2
    persist_retry_delay_s: float = 0.2

    # === SCORING ===
    score_tolerance: float = 2.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("step_time_budget_ms", "max_advances", "progress_queue_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("persist_timeout_s", "persist_retry_delay_s", "score_tolerance")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:  # noqa: N805
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.persist_max_retries < 0:
            errors.append("PERSIST_MAX_RETRIES must be >= 0")

        if self.persist_timeout_s == 0:
            errors.append("PERSIST_TIMEOUT_S must be > 0")

        try:
            self.step_time_budgets_map
        except ValueError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def step_time_budgets_map(self) -> dict[str, int]:
        """Parse "step=ms,step=ms" into a dict.

        Raises:
            ValueError: Malformed entry or non-positive budget.
        """
        budgets: dict[str, int] = {}
        for entry in self.step_time_budgets.split(","):
            entry = entry.strip()
            if not entry:
                continue
            step_id, sep, value = entry.partition("=")
            if not sep or not step_id.strip() or not value.strip().isdigit():
                raise ValueError(f"STEP_TIME_BUDGETS entry malformed: {entry!r}")
            ms = int(value.strip())
            if ms <= 0:
                raise ValueError(f"STEP_TIME_BUDGETS entry must be > 0: {entry!r}")
            budgets[step_id.strip()] = ms
        return budgets

    def budget_for(self, step_id: str) -> int | None:
        """Configured budget override for a step, if any."""
        return self.step_time_budgets_map.get(step_id)


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
