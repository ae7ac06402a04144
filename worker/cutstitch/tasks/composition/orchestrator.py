"""
Render Orchestrator

Decides which artifacts a job produces and drives each one through
compile -> encode -> probe -> validate:

- SINGLE_SEGMENT: one keep segment, base render only (a crossfade needs two
  inputs, so transitions are skipped even when enabled)
- MULTI_SEGMENT_WITH_TRANSITIONS: base render plus crossfade render
- MULTI_SEGMENT_HARD_CUT: base render only

All graphs are compiled before the first encode, so configuration errors
fail fast. Encodes write to <name>.partial.mp4; partial files are promoted
to their final names only after every planned artifact has passed its
duration and sync checks. Any failure removes the partial files of the
attempt.

compose() writes media files and nothing else. Recording artifacts is the
caller's job.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..ffmpeg_runner import (
    FFmpegCancelled,
    FFmpegError,
    FFmpegTimeout,
    ProgressCallback,
    run_ffmpeg_with_progress,
)
from .command import build_encode_command
from .cut_plan import KeepSegment, validate_keep_segments
from .duration import expected_duration_ms, join_count, validate_duration
from .errors import (
    CodecExecutionDetails,
    CodecExecutionFailed,
    CompositionError,
    InputNotFound,
    InputNotFoundDetails,
    InvalidPlan,
    InvalidPlanDetails,
)
from .filter_graph import FilterGraph, RenderMode, compile_graph
from .probe import FFprobe, ProbeResult
from .schemas import RenderArtifact, RenderConfig, TransitionInfo
from .sync_drift import measure_sync_drift, validate_sync_drift
from .timecode import ms_to_seconds

logger = logging.getLogger(__name__)

BASE_CUTS_FILENAME = "base_cuts.mp4"
TRANSITIONS_FILENAME = "with_transitions.mp4"
PARTIAL_SUFFIX = ".partial"

ARTIFACT_BASE = "base"
ARTIFACT_TRANSITIONED = "transitioned"


class RenderState(str, Enum):
    """Which artifacts one compose() call produces."""

    SINGLE_SEGMENT = "single_segment"
    MULTI_SEGMENT_WITH_TRANSITIONS = "multi_segment_with_transitions"
    MULTI_SEGMENT_HARD_CUT = "multi_segment_hard_cut"


@dataclass(frozen=True)
class RenderTarget:
    """One artifact to render: its kind, file name and join mode."""

    kind: str
    filename: str
    mode: RenderMode

    @property
    def partial_filename(self) -> str:
        stem, ext = os.path.splitext(self.filename)
        return f"{stem}{PARTIAL_SUFFIX}{ext}"


@dataclass(frozen=True)
class ComposeResult:
    """Everything one successful compose() produced."""

    state: RenderState
    artifacts: Tuple[RenderArtifact, ...]
    graphs: Dict[str, FilterGraph] = field(default_factory=dict)

    @property
    def base(self) -> Optional[RenderArtifact]:
        return next((a for a in self.artifacts if a.kind == ARTIFACT_BASE), None)

    @property
    def transitioned(self) -> Optional[RenderArtifact]:
        return next((a for a in self.artifacts if a.kind == ARTIFACT_TRANSITIONED), None)


# =============================================================================
# State Selection
# =============================================================================


def select_render_state(segment_count: int, transitions_enabled: bool) -> RenderState:
    """
    Pick the render state for a keep list.

    Raises:
        InvalidPlan: If segment_count is below 1
    """
    if segment_count < 1:
        raise InvalidPlan(
            "No keep segments to render",
            InvalidPlanDetails(reason="empty", keep_count=segment_count),
        )
    if segment_count == 1:
        return RenderState.SINGLE_SEGMENT
    if transitions_enabled:
        return RenderState.MULTI_SEGMENT_WITH_TRANSITIONS
    return RenderState.MULTI_SEGMENT_HARD_CUT


def plan_targets(state: RenderState) -> Tuple[RenderTarget, ...]:
    """Artifacts to render for a state, base first."""
    targets = [RenderTarget(ARTIFACT_BASE, BASE_CUTS_FILENAME, RenderMode.HARD_CUT)]
    if state == RenderState.MULTI_SEGMENT_WITH_TRANSITIONS:
        targets.append(
            RenderTarget(ARTIFACT_TRANSITIONED, TRANSITIONS_FILENAME, RenderMode.CROSSFADE)
        )
    return tuple(targets)


# =============================================================================
# Engine
# =============================================================================


class CompositionEngine:
    """
    Runs compositions against a codec runner and a prober.

    Args:
        runner: Callable with the signature of run_ffmpeg_with_progress
        prober: FFprobe-compatible object; when None one is built from the
            RenderConfig of each compose() call
    """

    def __init__(
        self,
        runner: Callable[..., None] = run_ffmpeg_with_progress,
        prober: Optional[FFprobe] = None,
    ):
        self.runner = runner
        self.prober = prober

    def compose(
        self,
        source_path: Union[str, Path],
        keep_segments: Iterable[KeepSegment],
        config: RenderConfig,
        output_dir: Union[str, Path],
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ComposeResult:
        """
        Render every artifact the keep list and config call for.

        Args:
            source_path: Source video with one video and one audio stream
            keep_segments: Ordered keep segments
            config: Encode and transition options
            output_dir: Directory for the artifacts (created if missing)
            cancel_event: Aborts the running encode when set
            progress_callback: Called with (percent, message) over the
                whole composition

        Returns:
            ComposeResult with one validated artifact per target

        Raises:
            InvalidPlan: Keep segments are empty, overlapping or out of order
            InputNotFound: The source file does not exist
            InvalidDuration: Transition out of range or longer than a segment
            CodecExecutionFailed: ffmpeg failed, timed out or was cancelled
            ProbeFailed: A rendered file could not be probed
            DurationMismatch: Rendered duration outside tolerance
            SyncDriftExceeded: A/V drift above budget
        """
        segments = validate_keep_segments(keep_segments)

        source = Path(source_path)
        if not source.is_file():
            raise InputNotFound(
                f"Source video not found: {source}",
                InputNotFoundDetails(key="source", path=str(source)),
            )

        state = select_render_state(len(segments), config.transitions_enabled)
        if state == RenderState.SINGLE_SEGMENT and config.transitions_enabled:
            logger.info("Single keep segment; transitions skipped")

        targets = plan_targets(state)
        graphs = {target.kind: self._compile(target, segments, config) for target in targets}

        logger.info(
            f"Composing {source.name}: state={state.value} segments={len(segments)} "
            f"targets={[t.filename for t in targets]}"
        )

        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        prober = self.prober or FFprobe(config.ffprobe_path, config.probe_timeout_seconds)
        report = progress_callback or (lambda percent, message: None)

        partials: List[Path] = []
        artifacts = []
        try:
            band = 100 / len(targets)
            for index, target in enumerate(targets):
                partial = out_dir / target.partial_filename
                partials.append(partial)

                band_start = index * band
                self._encode(
                    source,
                    target,
                    segments,
                    graphs[target.kind],
                    partial,
                    config,
                    cancel_event,
                    lambda p, m, s=band_start: report(int(s + p * band / 100), m),
                )
                artifacts.append(
                    self._validate(prober, target, segments, partial, out_dir, config)
                )

            for target, partial in zip(targets, partials):
                os.replace(partial, out_dir / target.filename)
                logger.info(f"Promoted {partial.name} -> {target.filename}")

        except CompositionError as e:
            logger.error(f"Composition failed [{e.category}] {e.error_type}: {e.message}")
            _discard(partials)
            raise
        except Exception:
            _discard(partials)
            raise

        report(100, "Composition complete")
        return ComposeResult(state=state, artifacts=tuple(artifacts), graphs=graphs)

    # =========================================================================
    # Stages
    # =========================================================================

    def _compile(
        self,
        target: RenderTarget,
        segments: Tuple[KeepSegment, ...],
        config: RenderConfig,
    ) -> FilterGraph:
        graph = compile_graph(
            segments,
            target.mode,
            transition=config.transition,
            last_segment_by_duration=config.last_segment_by_duration,
        )
        logger.debug(f"Compiled {target.kind} graph ({len(graph.nodes)} nodes): {graph.render()}")
        return graph

    def _encode(
        self,
        source: Path,
        target: RenderTarget,
        segments: Tuple[KeepSegment, ...],
        graph: FilterGraph,
        partial: Path,
        config: RenderConfig,
        cancel_event: Optional[threading.Event],
        progress_callback: ProgressCallback,
    ) -> None:
        cmd = build_encode_command(source, graph, partial, config)
        total_ms = expected_duration_ms(
            segments, target.mode, _transition_ms(target.mode, config)
        )

        logger.info(f"Encoding {target.filename} ({target.mode.value}, {total_ms}ms expected)")
        try:
            self.runner(
                cmd=cmd,
                total_duration_ms=total_ms,
                progress_callback=progress_callback,
                timeout_seconds=config.encode_timeout_seconds,
                cancel_event=cancel_event,
            )
        except FFmpegError as e:
            if isinstance(e, FFmpegCancelled):
                reason = "cancelled"
            elif isinstance(e, FFmpegTimeout):
                reason = "timeout"
            else:
                reason = "failed"
            raise CodecExecutionFailed(
                f"FFmpeg {reason} while rendering {target.filename}: {e}",
                CodecExecutionDetails(
                    source_path=str(source),
                    output_path=str(partial),
                    reason=reason,
                    return_code=e.returncode,
                    stderr=e.stderr,
                    command=tuple(cmd),
                ),
            ) from e

        if not partial.exists() or partial.stat().st_size == 0:
            raise CodecExecutionFailed(
                f"FFmpeg produced no output for {target.filename}",
                CodecExecutionDetails(
                    source_path=str(source),
                    output_path=str(partial),
                    reason="empty_output",
                    command=tuple(cmd),
                ),
            )

    def _validate(
        self,
        prober: FFprobe,
        target: RenderTarget,
        segments: Tuple[KeepSegment, ...],
        partial: Path,
        out_dir: Path,
        config: RenderConfig,
    ) -> RenderArtifact:
        transition_ms = _transition_ms(target.mode, config)
        probe = prober.probe(partial)

        fps = _output_fps(probe, config)
        expected_sec = ms_to_seconds(expected_duration_ms(segments, target.mode, transition_ms))
        validate_duration(
            probe.duration_sec,
            expected_sec,
            target.mode,
            fps,
            joins=join_count(segments, target.mode),
        )

        sync = validate_sync_drift(
            measure_sync_drift(
                prober,
                partial,
                segments,
                target.mode,
                probe,
                transition_duration_ms=transition_ms,
                enabled=config.sync_check_enabled,
                audio_fade_ms=config.effective_audio_fade_ms,
            )
        )

        transition = None
        suffix = "no_transitions"
        if target.mode == RenderMode.CROSSFADE:
            suffix = "with_transitions"
            transition = TransitionInfo(
                duration_ms=config.transition_duration_ms,
                audio_fade_ms=config.effective_audio_fade_ms,
            )

        video = probe.video_stream
        return RenderArtifact(
            kind=target.kind,
            output_location=str(out_dir / target.filename),
            duration_sec=probe.duration_sec,
            expected_duration_sec=expected_sec,
            resolution=probe.resolution,
            frame_rate=f"{fps:g}",
            codec=video.codec if video else None,
            notes=f"preset={config.preset},crf={config.crf},{suffix}",
            max_drift_ms=sync.max_drift_ms if sync.measured else None,
            transition=transition,
        )


def _transition_ms(mode: RenderMode, config: RenderConfig) -> int:
    return config.transition_duration_ms if mode == RenderMode.CROSSFADE else 0


def _output_fps(probe: ProbeResult, config: RenderConfig) -> float:
    video = probe.video_stream
    if video is not None and video.frame_rate:
        return video.frame_rate
    return float(config.frame_rate)


def _discard(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink()
            logger.info(f"Removed partial output {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial output {path}: {e}")


def compose(
    source_path: Union[str, Path],
    keep_segments: Iterable[KeepSegment],
    config: RenderConfig,
    output_dir: Union[str, Path],
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> ComposeResult:
    """Compose with the real ffmpeg runner and ffprobe."""
    return CompositionEngine().compose(
        source_path,
        keep_segments,
        config,
        output_dir,
        cancel_event=cancel_event,
        progress_callback=progress_callback,
    )
