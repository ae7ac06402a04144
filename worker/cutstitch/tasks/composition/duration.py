"""
Duration Estimator and Duration Validation

Expected output length per mode:
- hard cut:  sum(end_i - start_i)
- crossfade: sum(end_i - start_i) - (N-1) * transition

Tolerance per mode:
- hard cut:  one frame period (1/fps)
- crossfade: max(1/fps, 2% of expected, 5.0s). Compositing introduces
  encoder-dependent timing jitter that hard cuts do not.

The crossfade expectation is computed here independently of the chain
folder in filter_graph; both must agree to the millisecond.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from .cut_plan import KeepSegment
from .errors import DurationMismatch, DurationMismatchDetails
from .filter_graph import RenderMode
from .timecode import ms_to_seconds

logger = logging.getLogger(__name__)

CROSSFADE_PERCENT_TOLERANCE = 0.02
CROSSFADE_FIXED_TOLERANCE_SEC = 5.0


@dataclass(frozen=True)
class DurationCheck:
    """Outcome of a passed duration validation."""

    expected_sec: float
    actual_sec: float
    diff_sec: float
    tolerance_sec: float
    mode: RenderMode


def join_count(segments: Sequence[KeepSegment], mode: RenderMode) -> int:
    """Number of crossfade overlaps that shorten the output."""
    if mode == RenderMode.CROSSFADE:
        return max(len(segments) - 1, 0)
    return 0


def expected_duration_ms(
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    transition_duration_ms: int = 0,
) -> int:
    """Analytically expected output duration in milliseconds."""
    total_ms = sum(segment.end_ms - segment.start_ms for segment in segments)
    return total_ms - join_count(segments, mode) * transition_duration_ms


def estimate_duration(
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    transition_duration_ms: int = 0,
) -> float:
    """Expected output duration in seconds."""
    return ms_to_seconds(expected_duration_ms(segments, mode, transition_duration_ms))


def duration_tolerance(expected_sec: float, mode: RenderMode, fps: float) -> float:
    """
    Allowed |actual - expected| in seconds for the given mode.

    Args:
        expected_sec: Expected duration in seconds
        mode: Render mode of the artifact
        fps: Output frame rate (must be > 0)
    """
    if fps <= 0:
        raise ValueError(f"Frame rate must be positive, got {fps}")

    frame_sec = 1.0 / fps
    if mode == RenderMode.CROSSFADE:
        return max(
            frame_sec,
            expected_sec * CROSSFADE_PERCENT_TOLERANCE,
            CROSSFADE_FIXED_TOLERANCE_SEC,
        )
    return frame_sec


def validate_duration(
    actual_sec: float,
    expected_sec: float,
    mode: RenderMode,
    fps: float,
    joins: int = 0,
) -> DurationCheck:
    """
    Compare a probed duration against the estimate.

    Returns:
        DurationCheck describing the passing comparison

    Raises:
        DurationMismatch: If the difference exceeds the mode's tolerance
    """
    tolerance = duration_tolerance(expected_sec, mode, fps)
    diff = abs(actual_sec - expected_sec)

    if diff > tolerance:
        raise DurationMismatch(
            f"Output duration mismatch: expected {expected_sec:.3f}s, got {actual_sec:.3f}s "
            f"(diff: {diff:.3f}s, tolerance: ±{tolerance:.3f}s, mode: {mode.value})",
            DurationMismatchDetails(
                expected_sec=expected_sec,
                actual_sec=actual_sec,
                diff_sec=diff,
                tolerance_sec=tolerance,
                mode=mode.value,
                fps=fps,
                joins=joins,
            ),
        )

    logger.info(
        f"Duration validation passed ({mode.value}): expected={expected_sec:.3f}s "
        f"actual={actual_sec:.3f}s diff={diff:.3f}s tolerance={tolerance:.3f}s"
    )
    return DurationCheck(
        expected_sec=expected_sec,
        actual_sec=actual_sec,
        diff_sec=diff,
        tolerance_sec=tolerance,
        mode=mode,
    )
