# tests/unit/config/test_settings.py - v1
"""Tests for config/settings.py - typed Settings and validation rules."""

from __future__ import annotations

import pytest

from gapflow.config.settings import ConfigurationError, Settings, load_settings


class TestSettingsDefaults:
    def test_default_provider(self):
        s = Settings(_env_file=None)
        assert s.llm_provider == "anthropic"

    def test_default_engine(self):
        s = Settings(_env_file=None)
        assert s.step_time_budget_ms == 7000
        assert s.step_time_budgets_map == {}
        assert s.max_advances == 20

    def test_default_store(self):
        s = Settings(_env_file=None)
        assert s.store_backend == "json"
        assert s.persist_timeout_s == 5.0

    def test_default_tolerance(self):
        assert Settings(_env_file=None).score_tolerance == 2.0


class TestStepBudgets:
    def test_parse(self):
        s = Settings(_env_file=None, step_time_budgets="assessment=12000, executive_summary=9000")
        assert s.step_time_budgets_map == {"assessment": 12000, "executive_summary": 9000}
        assert s.budget_for("assessment") == 12000
        assert s.budget_for("scoring") is None

    def test_malformed(self):
        with pytest.raises(ConfigurationError, match="STEP_TIME_BUDGETS"):
            Settings(_env_file=None, step_time_budgets="assessment:12000")

    def test_zero_budget(self):
        with pytest.raises(ConfigurationError, match="must be > 0"):
            Settings(_env_file=None, step_time_budgets="assessment=0")


class TestSettingsValidation:
    def test_negative_retries(self):
        with pytest.raises(ConfigurationError, match="PERSIST_MAX_RETRIES"):
            Settings(_env_file=None, persist_max_retries=-1)

    def test_zero_persist_timeout(self):
        with pytest.raises(ConfigurationError, match="PERSIST_TIMEOUT_S"):
            Settings(_env_file=None, persist_timeout_s=0)

    def test_non_positive_budget(self):
        with pytest.raises(ValueError, match="step_time_budget_ms"):
            Settings(_env_file=None, step_time_budget_ms=0)

    def test_negative_tolerance(self):
        with pytest.raises(ValueError, match="score_tolerance"):
            Settings(_env_file=None, score_tolerance=-1)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, llm_provider="ollama")


class TestLoadSettings:
    def test_overrides(self):
        s = load_settings(_env_file=None, store_backend="sqlite", log_format="text")
        assert s.store_backend == "sqlite"
        assert s.log_format == "text"

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("STEP_TIME_BUDGET_MS", "1500")
        monkeypatch.setenv("STORE_BACKEND", "sqlite")
        s = Settings(_env_file=None)
        assert s.step_time_budget_ms == 1500
        assert s.store_backend == "sqlite"
