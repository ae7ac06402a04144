"""
Render configuration and artifact schemas.

RenderConfig is passed explicitly into compose(); nothing in the engine
reads the process environment. RenderArtifact describes one validated
output file.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .filter_graph import TransitionConfig


class RenderConfig(BaseModel):
    """Encode and transition options for one compose() call."""

    model_config = ConfigDict(frozen=True)

    preset: str = Field("fast", description="x264 preset")
    crf: int = Field(20, ge=0, le=51, description="x264 constant rate factor")
    frame_rate: int = Field(30, gt=0, description="Output frame rate")
    threads: int = Field(2, ge=0, description="Encoder threads (0 = auto)")
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"

    transitions_enabled: bool = False
    # Range is enforced by the crossfade folder so the error is InvalidDuration
    transition_duration_ms: int = 300
    audio_fade_ms: Optional[int] = None

    sync_check_enabled: bool = True
    last_segment_by_duration: bool = True

    encode_timeout_seconds: int = Field(1800, gt=0)
    probe_timeout_seconds: int = Field(60, gt=0)
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    @property
    def transition(self) -> TransitionConfig:
        return TransitionConfig(
            duration_ms=self.transition_duration_ms,
            audio_fade_ms=self.audio_fade_ms,
        )

    @property
    def effective_audio_fade_ms(self) -> int:
        return self.transition.effective_audio_fade_ms


class TransitionInfo(BaseModel):
    """Transition metadata recorded on a transitioned artifact."""

    type: Literal["crossfade"] = "crossfade"
    duration_ms: int
    audio_fade_ms: int


class RenderArtifact(BaseModel):
    """One validated render output."""

    kind: Literal["base", "transitioned"]
    output_location: str
    duration_sec: float
    expected_duration_sec: float
    resolution: Optional[str] = None
    frame_rate: str
    codec: Optional[str] = None
    notes: str = ""
    max_drift_ms: Optional[float] = None
    transition: Optional[TransitionInfo] = None
