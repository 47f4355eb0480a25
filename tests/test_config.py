"""
Configuration Tests
===================

YAML loading and environment overrides.
"""

import logging

import pytest
import yaml
from pydantic import ValidationError

from roadwatch.config import Settings, load_config, setup_logging


ENV_VARS = (
    "ROADWATCH_REFRESH_INTERVAL",
    "ROADWATCH_DATA_BACKEND",
    "ROADWATCH_DATA_URL",
    "ROADWATCH_LLM_API_URL",
    "ROADWATCH_LLM_API_KEY",
    "ROADWATCH_LLM_MODEL",
    "ROADWATCH_VIEW_ROTATION",
    "ROADWATCH_RANDOM_SEED",
    "ROADWATCH_PORT",
    "ROADWATCH_LOG_LEVEL",
    "ROADWATCH_CONFIG",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "refresh": {"interval_seconds": 45},
        "regeneration": {"road_mutation": 0.25},
        "datasource": {"backend": "http", "base_url": "http://traffic.local"},
        "view": {"rotation_presets": ["north", "east"]},
    }))
    return str(path)


class TestLoadConfig:
    """File and default values."""

    def test_defaults(self):
        settings = Settings()
        assert settings.refresh.interval_seconds == 30
        assert settings.regeneration.adjacent_bias == 0.6
        assert settings.regeneration.accident_eviction == 0.1
        assert settings.animation.frame_ms == 100
        assert settings.datasource.backend == "mock"
        assert settings.random_seed is None

    def test_file_values(self, config_file):
        settings = load_config(config_file)

        assert settings.refresh.interval_seconds == 45
        assert settings.regeneration.road_mutation == 0.25
        assert settings.regeneration.point_mutation == 0.3
        assert settings.datasource.backend == "http"
        assert settings.view.rotation_presets == ["north", "east"]

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "absent.yaml"))
        assert settings.refresh.interval_seconds == 30

    def test_config_path_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("ROADWATCH_CONFIG", config_file)
        assert load_config().refresh.interval_seconds == 45

    def test_invalid_probability_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("regeneration:\n  road_mutation: 1.5\n")
        with pytest.raises(ValidationError):
            load_config(str(path))


class TestEnvOverrides:
    """Environment variables win over the file."""

    def test_env_beats_file(self, config_file, monkeypatch):
        monkeypatch.setenv("ROADWATCH_REFRESH_INTERVAL", "10")
        monkeypatch.setenv("ROADWATCH_DATA_BACKEND", "mock")
        monkeypatch.setenv("ROADWATCH_LLM_API_KEY", "sk-test")
        monkeypatch.setenv("ROADWATCH_RANDOM_SEED", "42")

        settings = load_config(config_file)

        assert settings.refresh.interval_seconds == 10
        assert settings.datasource.backend == "mock"
        assert settings.datasource.base_url == "http://traffic.local"
        assert settings.recommendation.api_key == "sk-test"
        assert settings.random_seed == 42

    def test_port_precedence(self, config_file, monkeypatch):
        monkeypatch.setenv("ROADWATCH_PORT", "9000")
        assert load_config(config_file).server.port == 9000

        monkeypatch.setenv("PORT", "8080")
        assert load_config(config_file).server.port == 8080

    @pytest.mark.parametrize("value,expected", [
        ("true", True),
        ("1", True),
        ("ON", True),
        ("false", False),
        ("0", False),
    ])
    def test_view_rotation_flag(self, config_file, monkeypatch, value, expected):
        monkeypatch.setenv("ROADWATCH_VIEW_ROTATION", value)
        assert load_config(config_file).view.rotation_enabled is expected


class TestSetupLogging:
    """Root logging and library loggers."""

    def test_http_client_logs_quieted(self):
        settings = Settings.model_validate({"logging": {"level": "DEBUG", "format": "text"}})
        setup_logging(settings)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
