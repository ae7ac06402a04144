"""
Unit tests for composition.probe module.

ffprobe itself is not run; subprocess.run is patched where a process would
be started.
"""

import json
import subprocess
from types import SimpleNamespace

import pytest

from cutstitch.tasks.composition.errors import ProbeFailed
from cutstitch.tasks.composition.probe import FFprobe, parse_frame_rate, parse_probe_output

PROBE_JSON = {
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "avg_frame_rate": "30000/1001",
            "r_frame_rate": "30000/1001",
            "start_time": "0.000000",
            "duration": "19.519000",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "avg_frame_rate": "0/0",
            "start_time": "0.021333",
            "duration": "19.498667",
        },
    ],
    "format": {"duration": "19.520000", "size": "123456"},
}


def _completed(stdout="", stderr="", returncode=0):
    return SimpleNamespace(stdout=stdout, stderr=stderr, returncode=returncode)


class TestParseFrameRate:
    """Tests for ffprobe rational parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [("30/1", 30.0), ("25", 25.0), ("24000/1001", 24000 / 1001)],
    )
    def test_valid(self, value, expected):
        assert parse_frame_rate(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "0/0", "abc", "30/x"])
    def test_invalid(self, value):
        assert parse_frame_rate(value) is None


class TestParseProbeOutput:
    """Tests for ffprobe JSON -> ProbeResult."""

    def test_streams_and_format(self):
        result = parse_probe_output(PROBE_JSON)

        assert result.duration_sec == 19.52
        assert result.file_size == 123456
        assert result.resolution == "1920x1080"
        assert result.video_stream.codec == "h264"
        assert result.video_stream.frame_rate == pytest.approx(29.97, abs=0.001)
        assert result.video_stream.frame_rate_raw == "30000/1001"
        assert result.audio_stream.start_time == pytest.approx(0.021333)
        assert result.audio_stream.frame_rate is None

    def test_falls_back_to_r_frame_rate(self):
        data = {
            "streams": [{"codec_type": "video", "avg_frame_rate": "0/0", "r_frame_rate": "25/1"}],
            "format": {"duration": "1.0"},
        }
        assert parse_probe_output(data).video_stream.frame_rate == 25.0

    def test_duration_falls_back_to_longest_stream(self):
        data = {
            "streams": [
                {"codec_type": "video", "duration": "4.5"},
                {"codec_type": "audio", "duration": "4.6"},
            ],
            "format": {"duration": "N/A"},
        }
        assert parse_probe_output(data).duration_sec == 4.6

    def test_no_video_stream(self):
        result = parse_probe_output({"streams": [{"codec_type": "audio"}], "format": {}})

        assert result.video_stream is None
        assert result.resolution is None
        assert result.duration_sec == 0.0


class TestFFprobe:
    """Tests for the subprocess wrapper."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ProbeFailed) as exc_info:
            FFprobe().probe(tmp_path / "missing.mp4")
        assert exc_info.value.error_type == "PROBE_FAILED"

    def test_probe_parses_output(self, tmp_path, monkeypatch):
        media = tmp_path / "out.mp4"
        media.write_bytes(b"x")
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return _completed(stdout=json.dumps(PROBE_JSON))

        monkeypatch.setattr(subprocess, "run", fake_run)

        result = FFprobe("/opt/ffprobe", timeout_seconds=5).probe(media)

        assert result.duration_sec == 19.52
        assert calls[0][0] == "/opt/ffprobe"
        assert "-show_streams" in calls[0]

    def test_non_zero_exit(self, tmp_path, monkeypatch):
        media = tmp_path / "out.mp4"
        media.write_bytes(b"x")
        monkeypatch.setattr(
            subprocess, "run", lambda cmd, **kw: _completed(stderr="moov atom not found", returncode=1)
        )

        with pytest.raises(ProbeFailed) as exc_info:
            FFprobe().probe(media)

        assert exc_info.value.details.return_code == 1
        assert "moov atom" in exc_info.value.details.stderr

    def test_timeout(self, tmp_path, monkeypatch):
        media = tmp_path / "out.mp4"
        media.write_bytes(b"x")

        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)

        with pytest.raises(ProbeFailed, match="timed out"):
            FFprobe(timeout_seconds=3).probe(media)

    def test_garbage_output(self, tmp_path, monkeypatch):
        media = tmp_path / "out.mp4"
        media.write_bytes(b"x")
        monkeypatch.setattr(subprocess, "run", lambda cmd, **kw: _completed(stdout="not json"))

        with pytest.raises(ProbeFailed, match="parse"):
            FFprobe().probe(media)

    def test_frame_times_filters_and_sorts(self, tmp_path, monkeypatch):
        """Test frames before the window (keyframe preroll) are dropped."""
        media = tmp_path / "out.mp4"
        media.write_bytes(b"x")
        frames = {
            "frames": [
                {"pts_time": "10.033"},
                {"pts_time": "8.000"},
                {"best_effort_timestamp_time": "10.000"},
                {"pts_time": "9.800"},
                {"pts_time": "N/A"},
            ]
        }
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(cmd)
            return _completed(stdout=json.dumps(frames))

        monkeypatch.setattr(subprocess, "run", fake_run)

        times = FFprobe().frame_times(media, "audio", 9.75, 10.25)

        assert times == [9.8, 10.0, 10.033]
        assert calls[0][calls[0].index("-select_streams") + 1] == "a:0"
        assert calls[0][calls[0].index("-read_intervals") + 1] == "9.750%10.250"
