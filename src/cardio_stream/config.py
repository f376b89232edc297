"""
CardioStream Configuration
==========================

This module handles configuration loading for the ECG acquisition and
analysis service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CARDIO_USER_ID              -> service.user_id
    CARDIO_SCAN_TIMEOUT         -> device.scan_timeout_seconds
    CARDIO_CONNECT_TIMEOUT      -> device.connect_timeout_seconds
    CARDIO_DEVICE_KEYWORDS      -> device.name_keywords (comma separated)
    CARDIO_SAMPLE_INTERVAL_MS   -> signal.sample_interval_ms
    CARDIO_RECORDING_SECONDS    -> recording.duration_seconds
    CARDIO_STORAGE_BACKEND      -> storage.backend
    CARDIO_STORAGE_PATH         -> storage.path
    CARDIO_PORT                 -> server.port
    CARDIO_LOG_LEVEL            -> logging.level
    PORT                        -> server.port (container platforms)

Example:
    from cardio_stream.config import settings

    print(settings.signal.sample_interval_ms)
    print(settings.device.name_keywords)
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

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="cardio-stream", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")
    user_id: str = Field(default="local-user", description="Wearer the service records for")


class DeviceConfig(BaseModel):
    """Sensor discovery and connection configuration."""

    scan_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How long a single scan runs",
    )
    connect_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Bound on opening the link, discovering and subscribing",
    )
    name_keywords: List[str] = Field(
        default_factory=lambda: [
            "hm-10", "hm10", "b869h", "v5.0", "mlt-bt05", "ecg", "heart", "esp32",
        ],
        description="Case-insensitive device name fragments that identify a sensor",
    )
    auto_scan: bool = Field(default=True, description="Scan for a sensor when the service starts")


class LinkConfig(BaseModel):
    """Heartbeat monitoring and reconnection configuration."""

    heartbeat_interval_seconds: float = Field(default=5.0, gt=0, description="Heartbeat check period")
    stale_after_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Silence after which a heartbeat check counts as missed",
    )
    max_missed_heartbeats: int = Field(
        default=3,
        ge=1,
        description="Consecutive missed heartbeats that force a reconnection",
    )
    status_check_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Period of the transport connection-status reconciliation",
    )
    force_reconnect_pause_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between closing a stale link and reconnecting",
    )
    rescan_delay_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Rescan delay after a failed first connection",
    )
    max_reconnect_attempts: int = Field(
        default=10,
        ge=1,
        description="Attempts before the counter resets with a cap pause",
    )
    cap_pause_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Pause inserted when the attempt cap is reached",
    )
    backoff_schedule_seconds: List[float] = Field(
        default_factory=lambda: [2.0, 5.0, 10.0],
        description="Delays for attempts 1-3, 4-6 and 7 onwards",
    )


class IngestConfig(BaseModel):
    """Frame decoding and ring buffer configuration."""

    buffer_capacity: int = Field(default=1000, ge=10, description="Samples per channel buffer")
    min_batch_interval_ms: float = Field(
        default=50.0,
        ge=0,
        description="Minimum spacing between accepted sample batches",
    )
    reference_voltage: float = Field(
        default=3.3,
        gt=0,
        description="Full-scale voltage for raw int16 payloads",
    )
    snapshot_interval_ms: float = Field(
        default=200.0,
        gt=0,
        description="Period of buffer snapshots published for charting",
    )


class SignalConfig(BaseModel):
    """Beat detection configuration."""

    sample_interval_ms: float = Field(
        default=8.0,
        gt=0,
        description="Milliseconds between samples (8 ms = 125 Hz)",
    )
    threshold_factor: float = Field(
        default=0.6,
        gt=0,
        description="Beat threshold as a fraction of mean absolute amplitude",
    )
    refractory_samples: int = Field(
        default=40,
        ge=1,
        description="Minimum samples between consecutive beats",
    )
    threshold_window: int = Field(
        default=250,
        ge=10,
        description="Recent samples used for the streaming threshold",
    )


class ProfileConfig(BaseModel):
    """Personal profile learning configuration."""

    learning_window: int = Field(default=100, ge=1, description="Sessions used for learning")


class ScoringConfig(BaseModel):
    """Continuous scoring configuration."""

    tick_interval_ms: float = Field(default=500.0, gt=0, description="Scoring cadence while recording")
    window_samples: int = Field(
        default=3750,
        ge=10,
        description="Most recent session samples scored on each tick",
    )
    alert_threshold: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Overall score below which a health alert is raised",
    )
    score_conditioned_signal: bool = Field(
        default=False,
        description="Score the adaptively filtered window instead of the raw one",
    )


class PredictionConfig(BaseModel):
    """Cardiac risk prediction configuration."""

    pattern_window: int = Field(default=20, ge=1, description="Recent sessions used for pattern risk")


class RecordingConfig(BaseModel):
    """Recording session timing."""

    countdown_seconds: int = Field(default=3, ge=0, description="Countdown before recording")
    duration_seconds: int = Field(default=30, ge=1, description="Recording length")


class StorageConfig(BaseModel):
    """Session and user profile storage."""

    backend: str = Field(default="json", description="Storage backend: 'json' or 'memory'")
    path: str = Field(default="./data", description="Root directory for the json backend")
    history_limit: int = Field(default=100, ge=1, description="Sessions loaded for analysis")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for CardioStream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    link: LinkConfig = Field(default_factory=LinkConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    recording: RecordingConfig = Field(default_factory=RecordingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


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
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    if env_user := os.environ.get("CARDIO_USER_ID"):
        config_data.setdefault("service", {})["user_id"] = env_user

    # Device settings
    if env_scan := os.environ.get("CARDIO_SCAN_TIMEOUT"):
        config_data.setdefault("device", {})["scan_timeout_seconds"] = float(env_scan)
    if env_connect := os.environ.get("CARDIO_CONNECT_TIMEOUT"):
        config_data.setdefault("device", {})["connect_timeout_seconds"] = float(env_connect)
    if env_keywords := os.environ.get("CARDIO_DEVICE_KEYWORDS"):
        config_data.setdefault("device", {})["name_keywords"] = [
            k.strip() for k in env_keywords.split(",") if k.strip()
        ]

    # Signal and recording settings
    if env_interval := os.environ.get("CARDIO_SAMPLE_INTERVAL_MS"):
        config_data.setdefault("signal", {})["sample_interval_ms"] = float(env_interval)
    if env_duration := os.environ.get("CARDIO_RECORDING_SECONDS"):
        config_data.setdefault("recording", {})["duration_seconds"] = int(env_duration)

    # Storage settings
    if env_backend := os.environ.get("CARDIO_STORAGE_BACKEND"):
        config_data.setdefault("storage", {})["backend"] = env_backend
    if env_path := os.environ.get("CARDIO_STORAGE_PATH"):
        config_data.setdefault("storage", {})["path"] = env_path

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CARDIO_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    if env_log := os.environ.get("CARDIO_LOG_LEVEL"):
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


# =============================================================================
# Global Settings Instance
# =============================================================================

# Loaded on import
settings = load_config()
setup_logging(settings)
