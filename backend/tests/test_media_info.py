"""
Tests for ffprobe-based media info.

ffprobe is not invoked; subprocess.run is patched with canned output.
"""

import json
import subprocess
from unittest.mock import patch

import pytest

from clipcaption.exceptions import MediaProbeError
from clipcaption.utils.media_info import get_video_dimensions


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestGetVideoDimensions:
    """Test video dimension probing."""

    def test_reads_first_video_stream(self):
        output = json.dumps({"streams": [{"width": 1920, "height": 1080}]})

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)) as mock_run:
            assert get_video_dimensions("/tmp/in.mp4") == (1920, 1080)

        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "ffprobe"
        assert cmd[-1] == "/tmp/in.mp4"
        assert "-select_streams" in cmd

    def test_no_video_stream(self):
        output = json.dumps({"streams": []})

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)):
            with pytest.raises(MediaProbeError, match="No video stream"):
                get_video_dimensions("/tmp/audio.m4a")

    def test_zero_dimension(self):
        output = json.dumps({"streams": [{"width": 0, "height": 1080}]})

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)):
            with pytest.raises(MediaProbeError, match="dimensions not found"):
                get_video_dimensions("/tmp/in.mp4")

    def test_ffprobe_failure(self):
        with patch(
            "clipcaption.utils.media_info.subprocess.run",
            return_value=_completed(returncode=1, stderr="in.mp4: No such file or directory"),
        ):
            with pytest.raises(MediaProbeError, match="No such file"):
                get_video_dimensions("/tmp/in.mp4")

    def test_ffprobe_missing(self):
        with patch("clipcaption.utils.media_info.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(MediaProbeError, match="Failed to run ffprobe"):
                get_video_dimensions("/tmp/in.mp4")

    def test_unparseable_output(self):
        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed("not json")):
            with pytest.raises(MediaProbeError, match="parse"):
                get_video_dimensions("/tmp/in.mp4")

    def test_rotate_tag_swaps_dimensions(self):
        output = json.dumps({"streams": [{"width": 1920, "height": 1080, "tags": {"rotate": "90"}}]})

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)):
            assert get_video_dimensions("/tmp/phone.mov") == (1080, 1920)

    def test_display_matrix_rotation_swaps_dimensions(self):
        output = json.dumps(
            {"streams": [{"width": 1920, "height": 1080, "side_data_list": [{"rotation": -90}]}]}
        )

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)):
            assert get_video_dimensions("/tmp/phone.mov") == (1080, 1920)

    def test_upside_down_keeps_dimensions(self):
        output = json.dumps({"streams": [{"width": 1920, "height": 1080, "tags": {"rotate": "180"}}]})

        with patch("clipcaption.utils.media_info.subprocess.run", return_value=_completed(output)):
            assert get_video_dimensions("/tmp/in.mp4") == (1920, 1080)
