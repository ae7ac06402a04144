"""
A/V Sync Drift Measurement

Samples the rendered output around every join and reports how far the audio
and video tracks are apart there:

- base drift: the larger of the start-time gap and the end-time gap between
  the two streams
- per join: how late each stream resumes after the join boundary, beyond
  its own frame spacing, within a +/-250ms window; drift is the difference
  between the two lateness values plus the offset the graph itself builds
  up when the audio fade differs from the video crossfade

Frame spacing alone is never drift: at 5fps the first video frame after a
boundary can sit 199ms later than the first AAC frame on a perfectly
aligned file.

Join boundaries sit on the output timeline: the cumulative segment end for
hard cuts, the midpoint of the fade region for crossfades.

The budget is a hard 50ms ceiling; 50 passes, anything above fails.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .cut_plan import KeepSegment
from .errors import SyncDriftDetails, SyncDriftExceeded
from .filter_graph import RenderMode
from .probe import FFprobe, ProbeResult
from .timecode import ms_to_seconds

logger = logging.getLogger(__name__)

SYNC_DRIFT_BUDGET_MS = 50.0
SAMPLE_WINDOW_SEC = 0.25


@dataclass(frozen=True)
class DriftMeasurement:
    """Drift sampled at one join boundary."""

    segment_index: int
    boundary_sec: float
    drift_ms: float
    video_pts_sec: Optional[float] = None
    audio_pts_sec: Optional[float] = None
    track_offset_ms: int = 0
    is_join: bool = True


@dataclass(frozen=True)
class SyncReport:
    """All drift samples for one artifact."""

    max_drift_ms: float
    base_drift_ms: float
    mode: RenderMode
    measurements: Tuple[DriftMeasurement, ...] = field(default_factory=tuple)
    measured: bool = True

    @property
    def joins(self) -> int:
        return len(self.measurements)


def join_boundaries_ms(
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    transition_duration_ms: int = 0,
) -> List[int]:
    """
    Output-timeline positions (ms) of each join, in order.

    Hard cut: where segment i starts in the output.
    Crossfade: middle of the overlap between segment i-1 and i.
    """
    boundaries = []
    emitted_ms = segments[0].duration_ms if segments else 0
    for segment in segments[1:]:
        if mode == RenderMode.CROSSFADE:
            boundaries.append(emitted_ms - transition_duration_ms // 2)
            emitted_ms += segment.duration_ms - transition_duration_ms
        else:
            boundaries.append(emitted_ms)
            emitted_ms += segment.duration_ms
    return boundaries


def track_offsets_ms(
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    transition_duration_ms: int = 0,
    audio_fade_ms: Optional[int] = None,
) -> List[int]:
    """
    Audio/video offset (ms) the graph itself introduces after each join.

    Each crossfade shortens the video timeline by the crossfade and the
    audio timeline by the audio fade, so after join k the tracks are
    k * |audio_fade - crossfade| apart. Hard cuts keep both timelines equal.
    """
    if audio_fade_ms is None or mode != RenderMode.CROSSFADE:
        audio_fade_ms = transition_duration_ms

    offsets = []
    video_ms = audio_ms = segments[0].duration_ms if segments else 0
    for segment in segments[1:]:
        if mode == RenderMode.CROSSFADE:
            video_ms += segment.duration_ms - transition_duration_ms
            audio_ms += segment.duration_ms - audio_fade_ms
        else:
            video_ms += segment.duration_ms
            audio_ms += segment.duration_ms
        offsets.append(abs(video_ms - audio_ms))
    return offsets


def _first_at_or_after(times: Sequence[float], boundary_sec: float) -> Optional[float]:
    return next((t for t in times if t >= boundary_sec), None)


def _frame_spacing(times: Sequence[float], fallback: float = 0.0) -> float:
    """Smallest gap between consecutive samples, i.e. the stream's frame period."""
    ordered = sorted(times)
    gaps = [b - a for a, b in zip(ordered, ordered[1:]) if b > a]
    return min(gaps) if gaps else fallback


def _lateness(times: Sequence[float], boundary_sec: float, fallback_spacing: float) -> Optional[float]:
    """How far past one frame period the stream resumes after the boundary."""
    first = _first_at_or_after(times, boundary_sec)
    if first is None:
        return None
    return max(0.0, first - boundary_sec - _frame_spacing(times, fallback_spacing))


def _base_drift_ms(probe_result: ProbeResult) -> float:
    video = probe_result.video_stream
    audio = probe_result.audio_stream
    video_start = video.start_time or 0.0
    audio_start = audio.start_time or 0.0

    drift = abs(video_start - audio_start)
    if video.duration is not None and audio.duration is not None:
        drift = max(drift, abs((video_start + video.duration) - (audio_start + audio.duration)))
    return drift * 1000


def measure_sync_drift(
    prober: FFprobe,
    output_path: Union[str, Path],
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    probe_result: ProbeResult,
    transition_duration_ms: int = 0,
    enabled: bool = True,
    audio_fade_ms: Optional[int] = None,
) -> SyncReport:
    """
    Measure A/V drift of a rendered file at every join.

    Args:
        prober: FFprobe used for frame sampling
        output_path: Rendered file
        segments: Keep segments the file was rendered from
        mode: Render mode of the file
        probe_result: Already-probed metadata of the file
        transition_duration_ms: Crossfade length (crossfade mode only)
        enabled: When False, nothing is sampled and the report is marked
            unmeasured
        audio_fade_ms: Audio crossfade length; defaults to
            transition_duration_ms

    Returns:
        SyncReport with the maximum and per-join drift

    Raises:
        ProbeFailed: If frame sampling fails
    """
    if not enabled:
        logger.warning(f"A/V sync check disabled; {output_path} not sampled")
        return SyncReport(max_drift_ms=0.0, base_drift_ms=0.0, mode=mode, measured=False)

    video = probe_result.video_stream
    audio = probe_result.audio_stream
    if video is None or audio is None:
        logger.warning(
            f"{output_path} is missing a "
            f"{'video' if video is None else 'audio'} stream; only base drift reported"
        )
        return SyncReport(max_drift_ms=0.0, base_drift_ms=0.0, mode=mode)

    base_drift_ms = _base_drift_ms(probe_result)
    video_spacing = 1.0 / video.frame_rate if video.frame_rate else 0.0

    measurements = []
    window_ms = SAMPLE_WINDOW_SEC * 1000 * 2
    boundaries = join_boundaries_ms(segments, mode, transition_duration_ms)
    offsets = track_offsets_ms(segments, mode, transition_duration_ms, audio_fade_ms)
    for index, (boundary_ms, offset_ms) in enumerate(zip(boundaries, offsets), start=1):
        boundary_sec = ms_to_seconds(boundary_ms)
        start = boundary_sec - SAMPLE_WINDOW_SEC
        end = boundary_sec + SAMPLE_WINDOW_SEC

        video_times = prober.frame_times(output_path, "video", start, end)
        audio_times = prober.frame_times(output_path, "audio", start, end)
        video_late = _lateness(video_times, boundary_sec, video_spacing)
        audio_late = _lateness(audio_times, boundary_sec, 0.0)

        if video_late is None or audio_late is None:
            # One track has nothing around the join
            drift_ms = window_ms
        else:
            drift_ms = abs(video_late - audio_late) * 1000
        drift_ms += offset_ms

        measurements.append(
            DriftMeasurement(
                segment_index=index,
                boundary_sec=boundary_sec,
                drift_ms=round(drift_ms, 3),
                video_pts_sec=_first_at_or_after(video_times, boundary_sec),
                audio_pts_sec=_first_at_or_after(audio_times, boundary_sec),
                track_offset_ms=offset_ms,
            )
        )

    max_drift_ms = max([base_drift_ms] + [m.drift_ms for m in measurements])

    logger.info(
        f"Measured sync drift for {output_path}: max={max_drift_ms:.1f}ms "
        f"base={base_drift_ms:.1f}ms joins={len(measurements)} mode={mode.value}"
    )
    return SyncReport(
        max_drift_ms=round(max_drift_ms, 3),
        base_drift_ms=round(base_drift_ms, 3),
        mode=mode,
        measurements=tuple(measurements),
    )


def validate_sync_drift(report: SyncReport, budget_ms: float = SYNC_DRIFT_BUDGET_MS) -> SyncReport:
    """
    Enforce the drift budget.

    Raises:
        SyncDriftExceeded: If max_drift_ms is above the budget
    """
    if not report.measured:
        return report

    if report.max_drift_ms > budget_ms:
        raise SyncDriftExceeded(
            f"A/V sync drift exceeded threshold: {report.max_drift_ms}ms (max: {budget_ms:g}ms)",
            SyncDriftDetails(
                max_drift_ms=report.max_drift_ms,
                budget_ms=budget_ms,
                mode=report.mode.value,
                joins=report.joins,
                measurements=tuple(asdict(m) for m in report.measurements),
            ),
        )

    logger.info(f"A/V sync drift check passed: {report.max_drift_ms}ms <= {budget_ms:g}ms")
    return report
