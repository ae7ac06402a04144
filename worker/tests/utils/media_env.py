"""Media helpers for integration tests.

Provides utilities to:
- Skip tests when ffmpeg/ffprobe are not on PATH
- Generate a synthetic source video (test pattern + sine tone)
"""

import shutil
import subprocess
from pathlib import Path

import pytest


def ffmpeg_available() -> bool:
    """True when both ffmpeg and ffprobe can be found on PATH."""
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def skip_if_ffmpeg_missing():
    """Decorator to skip tests that drive real ffmpeg.

    Usage:
        @skip_if_ffmpeg_missing()
        def test_something():
            ...
    """
    return pytest.mark.skipif(
        not ffmpeg_available(),
        reason="ffmpeg/ffprobe not found on PATH",
    )


def make_source_video(
    path: Path,
    duration_sec: float = 12.0,
    fps: int = 30,
    size: str = "320x240",
) -> Path:
    """Render a test pattern video with a 440Hz tone.

    Args:
        path: Output file
        duration_sec: Length of both streams
        fps: Video frame rate
        size: WxH of the video

    Returns:
        The written path
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        "ffmpeg",
        "-y",
        "-hide_banner",
        "-loglevel", "error",
        "-f", "lavfi",
        "-i", f"testsrc=size={size}:rate={fps}:duration={duration_sec}",
        "-f", "lavfi",
        "-i", f"sine=frequency=440:sample_rate=48000:duration={duration_sec}",
        "-c:v", "libx264",
        "-preset", "ultrafast",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-shortest",
        str(path),
    ]
    subprocess.run(cmd, check=True, capture_output=True, timeout=120)
    return path
