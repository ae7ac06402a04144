"""
Worker Configuration

Settings class using pydantic-settings for environment variable loading.
This is the only place the worker reads the environment; render options are
turned into an explicit RenderConfig before they reach the composition
engine.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .tasks.composition.schemas import RenderConfig


class WorkerSettings(BaseSettings):
    """
    Worker settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For example, render_crf can be set via the RENDER_CRF env var.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Infrastructure
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    database_url: str = Field(
        default="sqlite:////data/db/cutstitch.db",
        description="Database connection URL",
    )
    storage_path: str = Field(
        default="/data",
        description="Root path for file storage",
    )

    # Encoding
    render_preset: str = Field(default="fast", description="x264 preset")
    render_crf: int = Field(default=20, ge=0, le=51, description="x264 CRF")
    render_fps: int = Field(default=30, gt=0, description="Output frame rate")
    render_threads: int = Field(default=2, ge=0, description="Encoder threads")
    render_audio_codec: str = Field(default="aac", description="Audio codec")
    render_audio_bitrate: str = Field(default="192k", description="Audio bitrate")

    # Transitions
    transitions_enabled: bool = Field(
        default=False,
        description="Render a crossfaded artifact in addition to base cuts",
    )
    transitions_duration_ms: int = Field(
        default=300,
        description="Video crossfade duration in milliseconds",
    )
    transitions_audio_fade_ms: Optional[int] = Field(
        default=None,
        description="Audio crossfade duration (defaults to the video duration)",
    )

    # Validation
    sync_check_enabled: bool = Field(
        default=True,
        description="Measure A/V drift of every rendered artifact",
    )

    # Limits and tools
    render_timeout: int = Field(
        default=1800,
        gt=0,
        description="Per-encode and per-job timeout in seconds",
    )
    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffprobe_path: str = Field(default="ffprobe", description="ffprobe executable")

    @property
    def storage_root(self) -> Path:
        return Path(self.storage_path)

    def render_config(self, transitions_enabled: Optional[bool] = None) -> RenderConfig:
        """
        Build the RenderConfig for one job.

        Args:
            transitions_enabled: Per-job override; when None the
                TRANSITIONS_ENABLED setting applies

        Returns:
            RenderConfig for compose()
        """
        if transitions_enabled is None:
            transitions_enabled = self.transitions_enabled

        return RenderConfig(
            preset=self.render_preset,
            crf=self.render_crf,
            frame_rate=self.render_fps,
            threads=self.render_threads,
            audio_codec=self.render_audio_codec,
            audio_bitrate=self.render_audio_bitrate,
            transitions_enabled=transitions_enabled,
            transition_duration_ms=self.transitions_duration_ms,
            audio_fade_ms=self.transitions_audio_fade_ms,
            sync_check_enabled=self.sync_check_enabled,
            encode_timeout_seconds=self.render_timeout,
            ffmpeg_path=self.ffmpeg_path,
            ffprobe_path=self.ffprobe_path,
        )


@lru_cache()
def get_settings() -> WorkerSettings:
    """
    Get cached worker settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.
    Tests call get_settings.cache_clear() after changing the environment.
    """
    return WorkerSettings()
