"""
FFmpeg Filter Graph Compilers

Two interchangeable strategies over the same keep segments, both reading a
single source input ([0:v] / [0:a]):

- Concatenation (hard cuts): trim + setpts per segment, one N-way concat
  for video and one for audio.
- Crossfade: the same trims, then an xfade/acrossfade chain folded pairwise
  over the segments.

The xfade offset of each join is measured on the output timeline being
built, not on the source timeline: every join consumes the previous join's
output as its first input, and every join shortens that timeline by the
overlap. All offsets are integer milliseconds and only become decimal
strings when node text is written.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .cut_plan import KeepSegment
from .errors import InvalidDuration, InvalidDurationDetails, InvalidPlan, InvalidPlanDetails
from .timecode import format_ms

logger = logging.getLogger(__name__)

MAX_TRANSITION_MS = 5000


class RenderMode(str, Enum):
    """How adjacent keep segments are joined."""

    HARD_CUT = "hard_cut"
    CROSSFADE = "crossfade"


@dataclass(frozen=True)
class TransitionConfig:
    """
    Crossfade settings applied uniformly to every join.

    audio_fade_ms falls back to duration_ms when not given.
    """

    duration_ms: int = 300
    audio_fade_ms: Optional[int] = None

    @property
    def effective_audio_fade_ms(self) -> int:
        if self.audio_fade_ms is None:
            return self.duration_ms
        return self.audio_fade_ms


@dataclass(frozen=True)
class FilterGraph:
    """
    Compiled -filter_complex description.

    A plain value: ordered node strings plus the labels to -map.
    """

    nodes: Tuple[str, ...]
    video_out: str
    audio_out: str

    def render(self) -> str:
        """Join nodes into the string passed to -filter_complex."""
        return ";".join(self.nodes)


@dataclass(frozen=True)
class CrossfadeChain:
    """Result of folding N segment streams through N-1 joins."""

    joins: Tuple[str, ...]
    video_out: str
    audio_out: str
    timeline_ms: int
    fade_offsets_ms: Tuple[int, ...]

    @property
    def video_joins(self) -> Tuple[str, ...]:
        return tuple(node for node in self.joins if "xfade=" in node)

    @property
    def audio_joins(self) -> Tuple[str, ...]:
        return tuple(node for node in self.joins if "acrossfade=" in node)


# =============================================================================
# Trim Nodes
# =============================================================================


def build_trim_nodes(
    segments: Sequence[KeepSegment],
    last_segment_by_duration: bool = True,
) -> List[str]:
    """
    Build per-segment video and audio trim nodes.

    Each trim is followed by a PTS reset so every segment stream starts at
    zero, which both concat and xfade expect.

    Args:
        segments: Ordered keep segments
        last_segment_by_duration: Express the final segment as
            start+duration instead of start+end. trim's end bound is
            exclusive and has been seen to drop the last frame.

    Returns:
        List of filter node strings, video then audio per segment
    """
    if not segments:
        raise InvalidPlan(
            "Cannot build trim nodes for an empty segment list",
            InvalidPlanDetails(reason="empty", keep_count=0),
        )

    nodes = []
    last_index = len(segments) - 1
    for idx, segment in enumerate(segments):
        start = format_ms(segment.start_ms)
        if last_segment_by_duration and idx == last_index:
            bound = f"duration={format_ms(segment.duration_ms)}"
        else:
            bound = f"end={format_ms(segment.end_ms)}"

        nodes.append(f"[0:v]trim=start={start}:{bound},setpts=PTS-STARTPTS[v{idx}]")
        nodes.append(f"[0:a]atrim=start={start}:{bound},asetpts=PTS-STARTPTS[a{idx}]")

    return nodes


# =============================================================================
# Concatenation Mode
# =============================================================================


def compile_concat(
    segments: Sequence[KeepSegment],
    last_segment_by_duration: bool = True,
) -> FilterGraph:
    """
    Compile a hard-cut graph: trims followed by N-way concat.

    A single segment needs no special case; concat of one stream is that
    stream.
    """
    nodes = build_trim_nodes(segments, last_segment_by_duration)

    count = len(segments)
    video_labels = "".join(f"[v{i}]" for i in range(count))
    audio_labels = "".join(f"[a{i}]" for i in range(count))
    nodes.append(f"{video_labels}concat=n={count}:v=1:a=0[vout]")
    nodes.append(f"{audio_labels}concat=n={count}:v=0:a=1[aout]")

    return FilterGraph(nodes=tuple(nodes), video_out="[vout]", audio_out="[aout]")


# =============================================================================
# Crossfade Mode
# =============================================================================


def validate_transition(transition: TransitionConfig) -> None:
    """
    Check transition durations are within range.

    Raises:
        InvalidDuration: If duration_ms is not in (0, 5000] or the audio
            fade is not positive
    """
    duration_ms = transition.duration_ms
    if not (0 < duration_ms <= MAX_TRANSITION_MS):
        raise InvalidDuration(
            f"Invalid transition duration: {duration_ms}ms "
            f"(must be 1-{MAX_TRANSITION_MS}ms)",
            InvalidDurationDetails(duration_ms=duration_ms, audio_fade_ms=transition.audio_fade_ms),
        )

    audio_fade_ms = transition.effective_audio_fade_ms
    if audio_fade_ms <= 0:
        raise InvalidDuration(
            f"Invalid audio fade duration: {audio_fade_ms}ms (must be > 0)",
            InvalidDurationDetails(duration_ms=duration_ms, audio_fade_ms=audio_fade_ms),
        )


def fold_crossfade_chain(
    segments: Sequence[KeepSegment],
    transition: TransitionConfig,
) -> CrossfadeChain:
    """
    Fold N trimmed segment streams into one through N-1 crossfade joins.

    Expects trim nodes labelled [v{i}] / [a{i}] (see build_trim_nodes).

    Args:
        segments: Ordered keep segments, at least two
        transition: Crossfade settings

    Returns:
        CrossfadeChain with the join nodes, final labels, the resulting
        output timeline length and each join's fade offset

    Raises:
        InvalidPlan: If fewer than two segments are given
        InvalidDuration: If the transition is out of range or longer than
            a segment it has to overlap
    """
    if len(segments) < 2:
        raise InvalidPlan(
            f"Crossfade needs at least 2 segments, got {len(segments)}",
            InvalidPlanDetails(reason="crossfade_single_segment", keep_count=len(segments)),
        )

    validate_transition(transition)

    d_ms = transition.duration_ms
    audio_ms = transition.effective_audio_fade_ms
    longest_fade = max(d_ms, audio_ms)
    for idx, segment in enumerate(segments):
        if segment.duration_ms < longest_fade:
            raise InvalidDuration(
                f"Transition of {longest_fade}ms is longer than keep segment {idx} "
                f"({segment.duration_ms}ms)",
                InvalidDurationDetails(
                    duration_ms=d_ms,
                    audio_fade_ms=audio_ms,
                    segment_index=idx,
                    segment_duration_ms=segment.duration_ms,
                ),
            )

    duration = format_ms(d_ms)
    audio_duration = format_ms(audio_ms)

    joins = []
    fade_offsets = []
    current_video = "[v0]"
    current_audio = "[a0]"

    # Length of the output timeline emitted so far
    offset_ms = segments[0].duration_ms

    for i in range(1, len(segments)):
        fade_offset_ms = offset_ms - d_ms
        video_out = f"[vx{i}]"
        audio_out = f"[ax{i}]"

        joins.append(
            f"{current_video}[v{i}]"
            f"xfade=transition=fade:duration={duration}:offset={format_ms(fade_offset_ms)}"
            f"{video_out}"
        )
        joins.append(f"{current_audio}[a{i}]acrossfade=d={audio_duration}{audio_out}")

        fade_offsets.append(fade_offset_ms)
        offset_ms += segments[i].duration_ms - d_ms
        current_video = video_out
        current_audio = audio_out

    if audio_ms != d_ms:
        logger.warning(
            f"Audio fade ({audio_ms}ms) differs from video crossfade ({d_ms}ms); "
            f"tracks will diverge by {abs(audio_ms - d_ms) * (len(segments) - 1)}ms"
        )

    return CrossfadeChain(
        joins=tuple(joins),
        video_out=current_video,
        audio_out=current_audio,
        timeline_ms=offset_ms,
        fade_offsets_ms=tuple(fade_offsets),
    )


def compile_crossfade(
    segments: Sequence[KeepSegment],
    transition: TransitionConfig,
    last_segment_by_duration: bool = True,
) -> FilterGraph:
    """
    Compile a crossfade graph: trims followed by the folded join chain.

    A single segment is rejected rather than rendered as a degenerate
    crossfade; callers route N=1 through compile_concat.
    """
    if len(segments) < 2:
        raise InvalidPlan(
            f"Crossfade needs at least 2 segments, got {len(segments)}",
            InvalidPlanDetails(reason="crossfade_single_segment", keep_count=len(segments)),
        )

    chain = fold_crossfade_chain(segments, transition)
    nodes = build_trim_nodes(segments, last_segment_by_duration)
    nodes.extend(chain.joins)

    return FilterGraph(nodes=tuple(nodes), video_out=chain.video_out, audio_out=chain.audio_out)


def compile_graph(
    segments: Sequence[KeepSegment],
    mode: RenderMode,
    transition: Optional[TransitionConfig] = None,
    last_segment_by_duration: bool = True,
) -> FilterGraph:
    """Dispatch to the compiler for the given mode."""
    if mode == RenderMode.CROSSFADE:
        return compile_crossfade(segments, transition or TransitionConfig(), last_segment_by_duration)
    return compile_concat(segments, last_segment_by_duration)
