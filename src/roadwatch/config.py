"""
Roadwatch Configuration
=======================

This module handles configuration loading for the overlay engine.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    ROADWATCH_REFRESH_INTERVAL -> refresh.interval_seconds
    ROADWATCH_DATA_BACKEND     -> datasource.backend
    ROADWATCH_DATA_URL         -> datasource.base_url
    ROADWATCH_LLM_API_URL      -> recommendation.api_url
    ROADWATCH_LLM_API_KEY      -> recommendation.api_key
    ROADWATCH_LLM_MODEL        -> recommendation.model
    ROADWATCH_VIEW_ROTATION    -> view.rotation_enabled
    ROADWATCH_RANDOM_SEED      -> random_seed
    ROADWATCH_PORT             -> server.port
    ROADWATCH_LOG_LEVEL        -> logging.level
    PORT                       -> server.port (Cloud Run)

Example:
    from roadwatch.config import settings

    print(settings.refresh.interval_seconds)
    print(settings.datasource.backend)
    print(settings.regeneration.road_mutation)
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Application identification."""

    name: str = Field(default="roadwatch", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class RefreshConfig(BaseModel):
    """Refresh scheduler configuration."""

    interval_seconds: int = Field(
        default=30,
        ge=1,
        description="Seconds between timed refreshes",
    )
    countdown_step_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Wall-clock length of one countdown step",
    )


class RegenerationConfig(BaseModel):
    """Probabilities and bounds of the regeneration rules."""

    road_mutation: float = Field(default=0.5, ge=0, le=1.0, description="P(road mutates)")
    adjacent_bias: float = Field(
        default=0.6,
        ge=0,
        le=1.0,
        description="P(mutated road moves to an adjacent level)",
    )
    volume_delta: float = Field(default=20.0, ge=0, description="Max volume shift per tick")
    volume_min: float = Field(default=60.0, ge=0, description="Volume lower bound")
    volume_max: float = Field(default=200.0, ge=0, description="Volume upper bound")
    point_mutation: float = Field(default=0.3, ge=0, le=1.0, description="P(point mutates)")
    accident_eviction: float = Field(default=0.1, ge=0, le=1.0, description="P(oldest accident clears)")
    accident_synthesis: float = Field(default=0.05, ge=0, le=1.0, description="P(new accident)")
    high_severity: float = Field(default=0.3, ge=0, le=1.0, description="P(new accident is HIGH)")
    accident_clear_minutes: int = Field(default=60, ge=1, description="Estimated clearance")
    vehicles_per_road: int = Field(default=3, ge=0, description="Vehicle tokens per road")


class AnimationConfig(BaseModel):
    """Animation loop configuration."""

    frame_ms: int = Field(default=100, ge=10, description="Animation frame interval")
    base_leg_seconds: float = Field(
        default=4.0,
        gt=0,
        description="Seconds per leg at LOW congestion (scaled by level rank)",
    )
    teleport_probability: float = Field(
        default=0.1,
        ge=0,
        le=1.0,
        description="P(vehicle jumps to a random spot at the end of a leg)",
    )
    flash_step: float = Field(default=0.1, gt=0, le=1.0, description="Opacity step per frame")
    flash_floor: float = Field(default=0.4, ge=0, le=1.0, description="Minimum flash opacity")
    flash_floor_high: float = Field(
        default=0.2,
        ge=0,
        le=1.0,
        description="Minimum flash opacity for HIGH severity",
    )
    pulse_base_radius: float = Field(default=200.0, gt=0, description="Pulse radius (metres)")
    pulse_max_radius: float = Field(default=400.0, gt=0, description="Pulse max radius (metres)")
    pulse_high_scale: float = Field(default=1.5, ge=1.0, description="Max radius scale for HIGH")
    pulse_step: float = Field(default=20.0, gt=0, description="Radius step per frame")


class ViewConfig(BaseModel):
    """Viewport rotation configuration."""

    initial_preset: str = Field(default="overall", description="Preset applied at startup")
    rotation_enabled: bool = Field(default=False, description="Cycle through presets")
    rotation_interval_seconds: float = Field(default=15.0, gt=0, description="Seconds per preset")
    rotation_presets: List[str] = Field(
        default_factory=lambda: ["overall", "downtown", "north", "east", "congestion"],
        description="Rotation order",
    )


class MockDataSourceConfig(BaseModel):
    """Mock data source configuration."""

    latency_seconds: float = Field(default=0.0, ge=0, description="Simulated fetch latency")
    chunk_size: int = Field(default=48, ge=1, description="Bytes per stream chunk")
    chunk_delay_seconds: float = Field(default=0.05, ge=0, description="Delay between chunks")


class DataSourceConfig(BaseModel):
    """Traffic data source configuration."""

    backend: str = Field(
        default="mock",
        description="Data source backend: 'mock' or 'http'",
    )
    base_url: str = Field(
        default="http://localhost:8080/api/traffic",
        description="Root URL of the traffic REST service",
    )
    timeout_seconds: float = Field(default=10.0, gt=0, description="Request timeout")
    mock: MockDataSourceConfig = Field(default_factory=MockDataSourceConfig)


class RecommendationConfig(BaseModel):
    """Recommendation (chat-completions) configuration."""

    api_url: str = Field(
        default="https://api.deepseek.com/v1/chat/completions",
        description="OpenAI-compatible chat-completions endpoint",
    )
    api_key: Optional[str] = Field(default=None, description="Bearer token")
    model: str = Field(default="deepseek-chat", description="Model name")
    temperature: float = Field(default=0.7, ge=0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=500, ge=1, description="Completion length cap")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Stream timeout")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")
    overlay_push_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Interval of /ws/overlays pushes",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for Roadwatch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    regeneration: RegenerationConfig = Field(default_factory=RegenerationConfig)
    animation: AnimationConfig = Field(default_factory=AnimationConfig)
    view: ViewConfig = Field(default_factory=ViewConfig)
    datasource: DataSourceConfig = Field(default_factory=DataSourceConfig)
    recommendation: RecommendationConfig = Field(default_factory=RecommendationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    random_seed: Optional[int] = Field(
        default=None,
        description="Seed for regeneration and animation (None = nondeterministic)",
    )


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, uses ROADWATCH_CONFIG,
            then config.yaml in the working directory, then the one at the
            project root.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        config_path = os.environ.get("ROADWATCH_CONFIG")
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)

    # Build settings object
    settings = Settings.model_validate(config_data)

    return settings


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Refresh settings
    if env_interval := os.environ.get("ROADWATCH_REFRESH_INTERVAL"):
        config_data.setdefault("refresh", {})["interval_seconds"] = int(env_interval)

    # Data source settings
    if env_backend := os.environ.get("ROADWATCH_DATA_BACKEND"):
        config_data.setdefault("datasource", {})["backend"] = env_backend
    if env_url := os.environ.get("ROADWATCH_DATA_URL"):
        config_data.setdefault("datasource", {})["base_url"] = env_url

    # Recommendation settings
    if env_api := os.environ.get("ROADWATCH_LLM_API_URL"):
        config_data.setdefault("recommendation", {})["api_url"] = env_api
    if env_key := os.environ.get("ROADWATCH_LLM_API_KEY"):
        config_data.setdefault("recommendation", {})["api_key"] = env_key
    if env_model := os.environ.get("ROADWATCH_LLM_MODEL"):
        config_data.setdefault("recommendation", {})["model"] = env_model

    # View settings
    if env_rotation := os.environ.get("ROADWATCH_VIEW_ROTATION"):
        config_data.setdefault("view", {})["rotation_enabled"] = env_rotation.lower() in ("1", "true", "yes", "on")

    # Determinism
    if env_seed := os.environ.get("ROADWATCH_RANDOM_SEED"):
        config_data["random_seed"] = int(env_seed)

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("ROADWATCH_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("ROADWATCH_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    # httpx logs every snapshot poll and completion request at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
