"""
Configuration Module

Application-wide settings for the authoring service: working roots,
encoding constants and defaults applied to every run.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class AppConfig:
    """Application configuration."""
    # Working directories
    media_root: Path = Path("/media")
    output_root: Path = Path("/output")
    scratch_root: Path = Path("/scratch")

    # Service access
    admin_token: Optional[str] = None

    # Chapter generation
    chapter_interval_seconds: float = 600.0
    chapter_buffer_seconds: float = 0.5

    # Bitrate budgeting (DVD-5)
    audio_kbps_per_track: int = 224
    disc_capacity_bytes: int = 4_700_000_000
    capacity_headroom: float = 0.12
    max_video_kbps: int = 6000

    # Menu and filler segments
    menu_duration_seconds: int = 30
    filler_duration_seconds: int = 1
    default_volume_name: str = "DVD_VIDEO"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "AppConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            AppConfig with MEDIA_ROOT, OUTPUT_ROOT, SCRATCH_ROOT, ADMIN_TOKEN
            and DISCWRIGHT_LOG_LEVEL applied over the defaults
        """
        env = os.environ if environ is None else environ
        config = cls()

        if env.get("MEDIA_ROOT"):
            config.media_root = Path(env["MEDIA_ROOT"])
        if env.get("OUTPUT_ROOT"):
            config.output_root = Path(env["OUTPUT_ROOT"])
        if env.get("SCRATCH_ROOT"):
            config.scratch_root = Path(env["SCRATCH_ROOT"])

        config.admin_token = env.get("ADMIN_TOKEN") or None
        config.log_level = env.get("DISCWRIGHT_LOG_LEVEL", config.log_level).upper()

        return config
