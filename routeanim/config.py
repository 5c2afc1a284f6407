"""
Route Animator Configuration Module.

Centralized configuration management using environment variables.
Supports .env files for local development.

Usage:
    from routeanim.config import settings

    print(settings.animation_duration_s)
    print(settings.osrm_url)
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def get_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


def get_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except (ValueError, TypeError):
        return default


# Bounds for the configured full-route duration (seconds at speed 1.0)
MIN_ANIMATION_DURATION_S = 5.0
MAX_ANIMATION_DURATION_S = 30.0

EXPORT_QUALITIES = ("low", "medium", "high")


@dataclass
class Settings:
    """Core settings loaded from environment."""

    # Playback
    animation_duration_s: float = field(
        default_factory=lambda: get_float("ROUTEANIM_ANIMATION_DURATION_S", 20.0)
    )
    default_speed: float = field(default_factory=lambda: get_float("ROUTEANIM_DEFAULT_SPEED", 1.0))
    refresh_hz: float = field(default_factory=lambda: get_float("ROUTEANIM_REFRESH_HZ", 60.0))

    # Capture / export
    export_fps: int = field(default_factory=lambda: get_int("ROUTEANIM_EXPORT_FPS", 30))
    export_quality: str = field(default_factory=lambda: os.getenv("ROUTEANIM_EXPORT_QUALITY", "high"))
    capture_timeout_s: float = field(default_factory=lambda: get_float("ROUTEANIM_CAPTURE_TIMEOUT_S", 300.0))
    capture_grace_s: float = field(default_factory=lambda: get_float("ROUTEANIM_CAPTURE_GRACE_S", 0.5))
    ffmpeg_binary: str = field(default_factory=lambda: os.getenv("ROUTEANIM_FFMPEG_BINARY", "ffmpeg"))
    output_dir: str = field(default_factory=lambda: os.getenv("ROUTEANIM_OUTPUT_DIR", "exports"))

    # Routing oracle
    osrm_url: str = field(
        default_factory=lambda: os.getenv("ROUTEANIM_OSRM_URL", "https://router.project-osrm.org")
    )
    routing_timeout_s: float = field(default_factory=lambda: get_float("ROUTEANIM_ROUTING_TIMEOUT_S", 10.0))
    routing_enabled: bool = field(default_factory=lambda: get_bool("ROUTEANIM_ROUTING_ENABLED", True))
    routing_failure_threshold: int = field(
        default_factory=lambda: get_int("ROUTEANIM_ROUTING_FAILURE_THRESHOLD", 3)
    )
    routing_recovery_s: float = field(default_factory=lambda: get_float("ROUTEANIM_ROUTING_RECOVERY_S", 120.0))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(
        default_factory=lambda: os.getenv(
            "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )

    def __post_init__(self):
        """Validate settings after initialization."""
        if not MIN_ANIMATION_DURATION_S <= self.animation_duration_s <= MAX_ANIMATION_DURATION_S:
            logging.warning(
                f"Animation duration {self.animation_duration_s}s outside "
                f"[{MIN_ANIMATION_DURATION_S}, {MAX_ANIMATION_DURATION_S}], using 20s"
            )
            self.animation_duration_s = 20.0

        if self.default_speed <= 0:
            logging.warning(f"Default speed {self.default_speed} must be positive, using 1.0")
            self.default_speed = 1.0

        if self.refresh_hz <= 0:
            self.refresh_hz = 60.0

        if self.export_fps <= 0:
            logging.warning(f"Export fps {self.export_fps} must be positive, using 30")
            self.export_fps = 30

        if self.export_quality not in EXPORT_QUALITIES:
            logging.warning(f"Unknown export quality '{self.export_quality}', using 'high'")
            self.export_quality = "high"

    def configure_logging(self):
        """Configure logging based on settings."""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        logging.basicConfig(level=level, format=self.log_format)


# Singleton instance
settings = Settings()
