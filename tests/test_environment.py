"""Tests for environment resolution and stage guards."""

import pytest

from city_sync.config.environment import (
    require_non_production,
    require_production,
    resolve_environment,
)
from city_sync.config.settings import Settings
from city_sync.errors import EnvironmentGuardError


class TestResolveEnvironment:
    def test_defaults_to_development(self):
        assert resolve_environment(None, None) == "development"

    def test_app_env_overrides_node_env(self):
        assert resolve_environment("staging", "production") == "staging"
        assert resolve_environment("production", "development") == "production"

    def test_node_env_used_when_app_env_missing(self):
        assert resolve_environment(None, "production") == "production"
        assert resolve_environment("", "staging") == "staging"

    def test_unknown_values_fall_through(self):
        assert resolve_environment("test", "production") == "production"
        assert resolve_environment("preview", None) == "development"

    def test_case_and_whitespace_insensitive(self):
        assert resolve_environment(" Production ", None) == "production"


class TestGuards:
    def test_non_production_guard(self):
        require_non_production("development", "normalize")
        require_non_production("staging", "normalize")
        with pytest.raises(EnvironmentGuardError, match="normalize"):
            require_non_production("production", "normalize")

    def test_production_guard(self):
        require_production("production", "delta-gate")
        with pytest.raises(EnvironmentGuardError, match="received: staging"):
            require_production("staging", "delta-gate")


def test_settings_read_unprefixed_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("NODE_ENV", "production")
    monkeypatch.setenv("CITY_SYNC_CITY_AUTOFIX_LOW_RISK", "true")
    settings = Settings()
    assert settings.app_env == "staging"
    assert settings.node_env == "production"
    assert settings.city_autofix_low_risk is True
    assert resolve_environment(settings.app_env, settings.node_env) == "staging"


def test_timezone_key_falls_back_to_places_key():
    settings = Settings(google_places_api_key="places-key", google_timezone_api_key="")
    assert settings.timezone_api_key == "places-key"
