"""
Unit tests for composition.filter_graph concatenation mode and dispatch.
"""

import pytest

from cutstitch.tasks.composition.errors import InvalidPlan
from cutstitch.tasks.composition.filter_graph import (
    FilterGraph,
    RenderMode,
    TransitionConfig,
    build_trim_nodes,
    compile_concat,
    compile_crossfade,
    compile_graph,
)
from tests.utils.plans import make_segments


class TestTrimNodes:
    """Tests for per-segment trim nodes."""

    def test_trim_and_pts_reset_per_segment(self):
        nodes = build_trim_nodes(make_segments((0, 10), (15, 25)), last_segment_by_duration=False)

        assert nodes == [
            "[0:v]trim=start=0.000:end=10.000,setpts=PTS-STARTPTS[v0]",
            "[0:a]atrim=start=0.000:end=10.000,asetpts=PTS-STARTPTS[a0]",
            "[0:v]trim=start=15.000:end=25.000,setpts=PTS-STARTPTS[v1]",
            "[0:a]atrim=start=15.000:end=25.000,asetpts=PTS-STARTPTS[a1]",
        ]

    def test_last_segment_trimmed_by_duration(self):
        """Test the final segment uses duration= instead of end=."""
        nodes = build_trim_nodes(make_segments((0, 10), (15, 25.5)))

        assert nodes[0].endswith("end=10.000,setpts=PTS-STARTPTS[v0]")
        assert nodes[2] == "[0:v]trim=start=15.000:duration=10.500,setpts=PTS-STARTPTS[v1]"
        assert nodes[3] == "[0:a]atrim=start=15.000:duration=10.500,asetpts=PTS-STARTPTS[a1]"

    def test_empty_segments_rejected(self):
        with pytest.raises(InvalidPlan):
            build_trim_nodes(())


class TestCompileConcat:
    """Tests for hard-cut graph compilation."""

    def test_two_segment_concat(self):
        graph = compile_concat(make_segments((0, 10), (15, 25)))

        assert graph.video_out == "[vout]"
        assert graph.audio_out == "[aout]"
        assert graph.nodes[-2] == "[v0][v1]concat=n=2:v=1:a=0[vout]"
        assert graph.nodes[-1] == "[a0][a1]concat=n=2:v=0:a=1[aout]"
        assert len(graph.nodes) == 2 * 2 + 2

    def test_single_segment_concat(self):
        """Test N=1 is an ordinary one-input concat."""
        graph = compile_concat(make_segments((0, 5)))

        assert graph.nodes == (
            "[0:v]trim=start=0.000:duration=5.000,setpts=PTS-STARTPTS[v0]",
            "[0:a]atrim=start=0.000:duration=5.000,asetpts=PTS-STARTPTS[a0]",
            "[v0]concat=n=1:v=1:a=0[vout]",
            "[a0]concat=n=1:v=0:a=1[aout]",
        )

    def test_concat_lists_every_segment_in_order(self):
        segments = make_segments(*[(i * 10, i * 10 + 5) for i in range(6)])
        graph = compile_concat(segments)

        assert graph.nodes[-2] == "[v0][v1][v2][v3][v4][v5]concat=n=6:v=1:a=0[vout]"

    def test_render_joins_with_semicolons(self):
        graph = FilterGraph(nodes=("a", "b", "c"), video_out="[x]", audio_out="[y]")
        assert graph.render() == "a;b;c"

    def test_graph_contains_no_xfade(self):
        rendered = compile_concat(make_segments((0, 10), (15, 25))).render()
        assert "xfade" not in rendered
        assert "acrossfade" not in rendered


class TestCompileGraph:
    """Tests for mode dispatch."""

    def test_hard_cut_dispatches_to_concat(self):
        segments = make_segments((0, 10), (15, 25))
        assert compile_graph(segments, RenderMode.HARD_CUT) == compile_concat(segments)

    def test_crossfade_dispatches_to_crossfade(self):
        segments = make_segments((0, 10), (15, 25))
        transition = TransitionConfig(duration_ms=500)

        assert compile_graph(segments, RenderMode.CROSSFADE, transition) == compile_crossfade(
            segments, transition
        )

    def test_compilation_is_deterministic(self):
        """Test identical inputs give identical graph text."""
        segments = make_segments((0, 3.333), (4.1, 9.9), (12, 18.25))
        transition = TransitionConfig(duration_ms=300)

        first = compile_graph(segments, RenderMode.CROSSFADE, transition).render()
        second = compile_graph(segments, RenderMode.CROSSFADE, transition).render()

        assert first == second
