"""
FFprobe wrapper.

Provides:
- Container/stream metadata for a rendered file (duration, resolution,
  frame rate, codec, stream start times)
- Per-frame presentation times inside a time window, used to sample
  audio/video alignment around join boundaries
"""

import json
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .errors import ProbeFailed, ProbeFailedDetails

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class StreamInfo:
    """One stream as reported by ffprobe."""

    type: str
    codec: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    frame_rate: Optional[float] = None
    frame_rate_raw: Optional[str] = None
    start_time: Optional[float] = None
    duration: Optional[float] = None


@dataclass(frozen=True)
class ProbeResult:
    """Metadata extracted from a media file."""

    duration_sec: float
    file_size: int
    streams: List[StreamInfo] = field(default_factory=list)

    @property
    def video_stream(self) -> Optional[StreamInfo]:
        return next((s for s in self.streams if s.type == "video"), None)

    @property
    def audio_stream(self) -> Optional[StreamInfo]:
        return next((s for s in self.streams if s.type == "audio"), None)

    @property
    def resolution(self) -> Optional[str]:
        video = self.video_stream
        if video is None or not video.width or not video.height:
            return None
        return f"{video.width}x{video.height}"


def parse_frame_rate(value: Optional[str]) -> Optional[float]:
    """Parse ffprobe's "num/den" (or plain number) frame rate."""
    if not value:
        return None
    try:
        if "/" in value:
            num, den = value.split("/", 1)
            den_value = float(den)
            if den_value <= 0:
                return None
            return float(num) / den_value
        return float(value)
    except ValueError:
        return None


def _optional_float(value) -> Optional[float]:
    if value in (None, "", "N/A"):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _optional_int(value) -> Optional[int]:
    number = _optional_float(value)
    return int(number) if number is not None else None


def parse_probe_output(data: dict) -> ProbeResult:
    """Convert ffprobe -show_format -show_streams JSON into a ProbeResult."""
    format_info = data.get("format", {})
    streams = []
    for raw in data.get("streams", []):
        frame_rate_raw = raw.get("avg_frame_rate")
        if not parse_frame_rate(frame_rate_raw):
            frame_rate_raw = raw.get("r_frame_rate")
        streams.append(
            StreamInfo(
                type=raw.get("codec_type", "unknown"),
                codec=raw.get("codec_name"),
                width=_optional_int(raw.get("width")),
                height=_optional_int(raw.get("height")),
                frame_rate=parse_frame_rate(frame_rate_raw) if raw.get("codec_type") == "video" else None,
                frame_rate_raw=frame_rate_raw if raw.get("codec_type") == "video" else None,
                start_time=_optional_float(raw.get("start_time")),
                duration=_optional_float(raw.get("duration")),
            )
        )

    duration_sec = _optional_float(format_info.get("duration"))
    if duration_sec is None:
        # Fall back to the longest stream
        durations = [s.duration for s in streams if s.duration is not None]
        duration_sec = max(durations) if durations else 0.0

    return ProbeResult(
        duration_sec=duration_sec,
        file_size=_optional_int(format_info.get("size")) or 0,
        streams=streams,
    )


class FFprobe:
    """
    Runs ffprobe as a subprocess.

    Args:
        ffprobe_path: Executable to run
        timeout_seconds: Per-invocation limit
    """

    def __init__(self, ffprobe_path: str = "ffprobe", timeout_seconds: int = 60):
        self.ffprobe_path = ffprobe_path
        self.timeout_seconds = timeout_seconds

    def probe(self, path: Union[str, Path]) -> ProbeResult:
        """
        Extract container and stream metadata.

        Raises:
            ProbeFailed: If the file is missing, ffprobe fails or its output
                cannot be parsed
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        data = self._run_json(path, cmd)
        result = parse_probe_output(data)
        logger.debug(
            f"Probed {path}: duration={result.duration_sec:.3f}s "
            f"resolution={result.resolution} streams={len(result.streams)}"
        )
        return result

    def frame_times(
        self,
        path: Union[str, Path],
        stream_type: str,
        start_sec: float,
        end_sec: float,
    ) -> List[float]:
        """
        Presentation times (seconds) of decoded frames in [start_sec, end_sec].

        Args:
            path: Media file
            stream_type: "video" or "audio"
            start_sec: Window start on the file's timeline
            end_sec: Window end on the file's timeline

        Raises:
            ProbeFailed: If ffprobe fails
        """
        selector = "v:0" if stream_type == "video" else "a:0"
        window_start = max(0.0, start_sec)
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", selector,
            "-read_intervals", f"{window_start:.3f}%{end_sec:.3f}",
            "-show_entries", "frame=best_effort_timestamp_time,pts_time",
            "-print_format", "json",
            str(path),
        ]
        data = self._run_json(path, cmd)

        times = []
        for frame in data.get("frames", []):
            pts = _optional_float(frame.get("pts_time"))
            if pts is None:
                pts = _optional_float(frame.get("best_effort_timestamp_time"))
            # read_intervals seeks to the preceding keyframe
            if pts is not None and window_start <= pts <= end_sec:
                times.append(pts)
        return sorted(times)

    def _run_json(self, path: Union[str, Path], cmd: List[str]) -> dict:
        if not Path(path).exists():
            raise ProbeFailed(
                f"File not found for probing: {path}",
                ProbeFailedDetails(path=str(path)),
            )

        logger.debug(f"FFprobe command: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            raise ProbeFailed(
                f"ffprobe timed out after {self.timeout_seconds}s for {path}",
                ProbeFailedDetails(path=str(path)),
            )
        except OSError as e:
            raise ProbeFailed(
                f"ffprobe could not be started: {e}",
                ProbeFailedDetails(path=str(path), stderr=str(e)),
            )

        if result.returncode != 0:
            stderr_tail = (result.stderr or "")[-STDERR_TAIL_CHARS:]
            raise ProbeFailed(
                f"ffprobe failed with code {result.returncode} for {path}",
                ProbeFailedDetails(path=str(path), return_code=result.returncode, stderr=stderr_tail),
            )

        if not result.stdout or not result.stdout.strip():
            raise ProbeFailed(
                f"ffprobe returned empty output for {path}",
                ProbeFailedDetails(path=str(path), stderr=(result.stderr or "")[-STDERR_TAIL_CHARS:]),
            )

        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeFailed(
                f"Failed to parse ffprobe output for {path}: {e}",
                ProbeFailedDetails(path=str(path), stderr=result.stdout[:500]),
            )
