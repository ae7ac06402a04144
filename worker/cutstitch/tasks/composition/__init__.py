"""
Segment Composition Engine

Turns a cut plan's keep segments into rendered artifacts: a hard-cut base
render and, when transitions are enabled, a crossfaded render. Both are
validated for duration and A/V sync before they are kept.

Usage:
    from cutstitch.tasks.composition import (
        RenderConfig,
        compose,
        extract_keep_segments,
        parse_cut_plan,
    )

    plan = parse_cut_plan(raw_json)
    segments = extract_keep_segments(plan)
    result = compose(
        source_path="source.mp4",
        keep_segments=segments,
        config=RenderConfig(transitions_enabled=True),
        output_dir="renders/",
    )
    print(result.base.output_location)
"""

from .command import build_encode_command

from .cut_plan import (
    Cut,
    CutPlan,
    KeepSegment,
    extract_keep_segments,
    parse_cut_plan,
    validate_keep_segments,
)

from .duration import (
    DurationCheck,
    duration_tolerance,
    estimate_duration,
    expected_duration_ms,
    validate_duration,
)

from .errors import (
    CodecExecutionFailed,
    CompositionError,
    DurationMismatch,
    InputNotFound,
    InvalidDuration,
    InvalidPlan,
    ProbeFailed,
    SyncDriftExceeded,
)

from .filter_graph import (
    CrossfadeChain,
    FilterGraph,
    RenderMode,
    TransitionConfig,
    compile_concat,
    compile_crossfade,
    compile_graph,
    fold_crossfade_chain,
)

from .orchestrator import (
    ComposeResult,
    CompositionEngine,
    RenderState,
    compose,
    plan_targets,
    select_render_state,
)

from .probe import FFprobe, ProbeResult, StreamInfo

from .schemas import RenderArtifact, RenderConfig, TransitionInfo

from .sync_drift import (
    SYNC_DRIFT_BUDGET_MS,
    SyncReport,
    measure_sync_drift,
    track_offsets_ms,
    validate_sync_drift,
)

__all__ = [
    # Cut plan
    "Cut",
    "CutPlan",
    "KeepSegment",
    "parse_cut_plan",
    "extract_keep_segments",
    "validate_keep_segments",
    # Graphs
    "FilterGraph",
    "CrossfadeChain",
    "RenderMode",
    "TransitionConfig",
    "compile_concat",
    "compile_crossfade",
    "compile_graph",
    "fold_crossfade_chain",
    "build_encode_command",
    # Validation
    "DurationCheck",
    "duration_tolerance",
    "estimate_duration",
    "expected_duration_ms",
    "validate_duration",
    "SYNC_DRIFT_BUDGET_MS",
    "SyncReport",
    "measure_sync_drift",
    "track_offsets_ms",
    "validate_sync_drift",
    # Probing
    "FFprobe",
    "ProbeResult",
    "StreamInfo",
    # Orchestration
    "RenderConfig",
    "RenderArtifact",
    "TransitionInfo",
    "RenderState",
    "ComposeResult",
    "CompositionEngine",
    "compose",
    "plan_targets",
    "select_render_state",
    # Errors
    "CompositionError",
    "InvalidPlan",
    "InputNotFound",
    "InvalidDuration",
    "CodecExecutionFailed",
    "ProbeFailed",
    "DurationMismatch",
    "SyncDriftExceeded",
]
