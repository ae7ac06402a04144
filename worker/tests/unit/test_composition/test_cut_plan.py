"""
Unit tests for composition.cut_plan module.

Covers schema parsing, keep segment extraction and the keep invariants.
"""

import json

import pytest

from cutstitch.tasks.composition.cut_plan import (
    CutPlan,
    KeepSegment,
    extract_keep_segments,
    parse_cut_plan,
    validate_keep_segments,
)
from cutstitch.tasks.composition.errors import CATEGORY_CONFIGURATION, InvalidPlan
from tests.utils.plans import cut, keep, make_cut_plan


class TestParseCutPlan:
    """Tests for cut plan JSON parsing."""

    def test_parses_camel_case_wire_format(self):
        """Test the planner's schemaVersion/sourceMedia keys are accepted."""
        raw = json.dumps(make_cut_plan([keep("0", "10"), cut("10", "15")]))
        plan = parse_cut_plan(raw)

        assert isinstance(plan, CutPlan)
        assert plan.schema_version == "1.0.0"
        assert plan.source_media == "source.mp4"
        assert [c.type for c in plan.cuts] == ["keep", "cut"]

    def test_parses_dict_input(self):
        plan = parse_cut_plan(make_cut_plan([keep("1.5", "2.5")]))
        assert plan.cuts[0].start == "1.5"

    def test_numeric_timestamps_are_coerced_to_strings(self):
        """Test bare JSON numbers become decimal strings."""
        plan = parse_cut_plan({"cuts": [{"start": 0, "end": 9.5, "type": "keep"}]})
        assert plan.cuts[0].start == "0"
        assert plan.cuts[0].end == "9.5"

    def test_malformed_json_raises_invalid_plan(self):
        with pytest.raises(InvalidPlan) as exc_info:
            parse_cut_plan("{not json")

        assert exc_info.value.details.reason == "schema"
        assert exc_info.value.category == CATEGORY_CONFIGURATION

    def test_unknown_cut_type_raises_invalid_plan(self):
        """Test schema violations are reported with their location."""
        with pytest.raises(InvalidPlan) as exc_info:
            parse_cut_plan({"cuts": [{"start": "0", "end": "1", "type": "maybe"}]})

        errors = exc_info.value.details.validation_errors
        assert any(e.startswith("cuts.0.type") for e in errors)

    def test_confidence_out_of_range_rejected(self):
        with pytest.raises(InvalidPlan):
            parse_cut_plan(
                {"cuts": [{"start": "0", "end": "1", "type": "keep", "confidence": 1.5}]}
            )


class TestExtractKeepSegments:
    """Tests for keep segment extraction."""

    def test_extracts_keeps_in_plan_order(self):
        plan = parse_cut_plan(
            make_cut_plan(
                [keep("0", "10"), cut("10", "15"), keep("15", "25"), cut("25", "30")]
            )
        )
        segments = extract_keep_segments(plan)

        assert segments == (KeepSegment(0, 10000), KeepSegment(15000, 25000))

    def test_adjacent_keeps_are_allowed(self):
        """Test a keep may start exactly where the previous one ends."""
        plan = parse_cut_plan(make_cut_plan([keep("0", "5"), keep("5", "7.25")]))
        segments = extract_keep_segments(plan)

        assert [s.duration_ms for s in segments] == [5000, 2250]

    def test_millisecond_precision_is_kept(self):
        plan = parse_cut_plan(make_cut_plan([keep("1.001", "2.999")]))
        (segment,) = extract_keep_segments(plan)

        assert segment.start_ms == 1001
        assert segment.end_ms == 2999
        assert segment.duration_ms == 1998

    def test_no_keeps_raises_empty(self):
        plan = parse_cut_plan(make_cut_plan([cut("0", "10")]))

        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(plan)

        details = exc_info.value.details
        assert details.reason == "empty"
        assert details.total_cuts == 1
        assert details.keep_count == 0

    def test_empty_cut_list_raises_empty(self):
        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(parse_cut_plan(make_cut_plan([])))
        assert exc_info.value.details.reason == "empty"

    @pytest.mark.parametrize(
        "start,end,reason",
        [
            ("5", "5", "non_positive_duration"),
            ("6", "5", "non_positive_duration"),
            ("-1", "5", "negative_start"),
            ("abc", "5", "timestamp"),
        ],
    )
    def test_bad_segment_raises(self, start, end, reason):
        plan = parse_cut_plan(make_cut_plan([keep("0", "1"), keep(start, end)]))

        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(plan)

        assert exc_info.value.details.reason == reason
        assert exc_info.value.details.segment_index == 1

    def test_sub_millisecond_keep_collapses(self):
        """Test a keep narrower than 1ms is rejected with the plan's own timestamps."""
        plan = parse_cut_plan(make_cut_plan([keep("0", "1"), keep("10.0001", "10.0004")]))

        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(plan)

        details = exc_info.value.details
        assert details.reason == "non_positive_duration"
        assert (details.start, details.end) == ("10.000", "10.000")
        assert (details.plan_start, details.plan_end) == ("10.0001", "10.0004")

    def test_adjacent_sub_millisecond_timestamps_round_apart(self):
        segments = extract_keep_segments(
            parse_cut_plan(make_cut_plan([keep("10.0004", "10.0006")]))
        )
        assert (segments[0].start_ms, segments[0].end_ms) == (10000, 10001)

    def test_overlapping_keeps_rejected(self):
        plan = parse_cut_plan(make_cut_plan([keep("0", "10"), keep("9.5", "20")]))

        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(plan)

        assert exc_info.value.details.reason == "overlap"

    def test_out_of_order_keeps_rejected(self):
        """Test keeps are not silently sorted."""
        plan = parse_cut_plan(make_cut_plan([keep("20", "30"), keep("0", "10")]))

        with pytest.raises(InvalidPlan) as exc_info:
            extract_keep_segments(plan)

        assert exc_info.value.details.reason == "out_of_order"


class TestValidateKeepSegments:
    """Tests for re-validation of directly supplied segments."""

    def test_returns_tuple(self):
        segments = validate_keep_segments([KeepSegment(0, 1000), KeepSegment(2000, 3000)])
        assert segments == (KeepSegment(0, 1000), KeepSegment(2000, 3000))

    def test_empty_rejected(self):
        with pytest.raises(InvalidPlan):
            validate_keep_segments([])

    def test_overlap_rejected(self):
        with pytest.raises(InvalidPlan):
            validate_keep_segments([KeepSegment(0, 1000), KeepSegment(500, 3000)])

    def test_zero_length_rejected(self):
        with pytest.raises(InvalidPlan):
            validate_keep_segments([KeepSegment(1000, 1000)])


class TestKeepSegment:
    """Tests for KeepSegment conversions."""

    def test_from_seconds(self):
        segment = KeepSegment.from_seconds("15", 25.5)
        assert segment == KeepSegment(15000, 25500)
        assert segment.start == 15.0
        assert segment.end == 25.5
        assert segment.duration == 10.5
