"""Tests for the render process driver.

FFmpeg is replaced by shell scripts that print FFmpeg-style stderr.
"""

import asyncio

import pytest

from clipcaption.exceptions import RenderCancelledError, RenderProcessError
from clipcaption.render.ffmpeg_runner import (
    RenderProcessDriver,
    compute_percent,
    parse_duration,
    parse_elapsed,
)
from clipcaption.render.filter_graph import FilterGraph

BANNER = [
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from in.mp4:",
    "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1205 kb/s",
    "  Stream #0:0: Video: h264, yuv420p, 1920x1080, 30 fps",
]


class TestParsing:
    """Tests for stderr parsing helpers."""

    def test_parse_duration(self):
        assert parse_duration("  Duration: 01:02:03.50, start: 0.000000") == 3723.5

    def test_parse_duration_absent(self):
        assert parse_duration("Stream #0:0: Video: h264") is None

    def test_parse_elapsed(self):
        line = "frame=  240 fps= 60 q=28.0 size=    1024kB time=00:00:08.00 bitrate=1048.6kbits/s"
        assert parse_elapsed(line) == 8.0

    def test_compute_percent_caps_at_100(self):
        assert compute_percent(12.0, 10.0) == 100
        assert compute_percent(2.5, 10.0) == 25
        assert compute_percent(1.0, 0.0) == 0


class TestBuildCommand:
    """Tests for FFmpeg argument construction."""

    def test_command_layout(self):
        driver = RenderProcessDriver(ffmpeg_path="ffmpeg", preset="fast", crf=20)
        graph = FilterGraph(image_inputs=("/tmp/s0.png",))

        cmd = driver.build_command("/tmp/in.mp4", "/tmp/out.mp4", graph)

        assert cmd[:6] == ["ffmpeg", "-y", "-i", "/tmp/in.mp4", "-i", "/tmp/s0.png"]
        assert cmd[cmd.index("-filter_complex") + 1] == graph.serialize()
        assert cmd[cmd.index("-preset") + 1] == "fast"
        assert cmd[cmd.index("-crf") + 1] == "20"
        assert "[vout]" in cmd
        assert "0:a?" in cmd
        assert cmd[-1] == "/tmp/out.mp4"


class TestRun:
    """Tests for process execution."""

    @pytest.mark.asyncio
    async def test_success_reports_progress(self, make_fake_ffmpeg, tmp_path):
        script = make_fake_ffmpeg(
            BANNER
            + [
                "frame=  75 fps=30 time=00:00:02.50 bitrate=1000kbits/s\\r",
                "frame= 150 fps=30 time=00:00:05.00 bitrate=1000kbits/s\\r",
                "frame= 151 fps=30 time=00:00:05.01 bitrate=1000kbits/s\\r",
                "frame= 300 fps=30 time=00:00:10.00 bitrate=1000kbits/s",
            ]
        )
        driver = RenderProcessDriver(ffmpeg_path=script)
        progress: list[int] = []

        duration = await driver.run(
            "in.mp4", str(tmp_path / "out.mp4"), FilterGraph(), on_progress=progress.append
        )

        assert duration == 10.0
        assert progress == [25, 50, 100]

    @pytest.mark.asyncio
    async def test_success_without_duration_reports_only_completion(self, make_fake_ffmpeg, tmp_path):
        script = make_fake_ffmpeg(["frame= 10 time=00:00:01.00"])
        progress: list[int] = []

        duration = await RenderProcessDriver(ffmpeg_path=script).run(
            "in.mp4", str(tmp_path / "out.mp4"), FilterGraph(), on_progress=progress.append
        )

        assert duration == 0.0
        assert progress == [100]

    @pytest.mark.asyncio
    async def test_nonzero_exit_keeps_diagnostic_tail(self, make_fake_ffmpeg, tmp_path):
        lines = [f"diagnostic line {i}" for i in range(30)]
        script = make_fake_ffmpeg(lines, exit_code=1)
        progress: list[int] = []

        with pytest.raises(RenderProcessError) as exc_info:
            await RenderProcessDriver(ffmpeg_path=script, tail_lines=20).run(
                "in.mp4", str(tmp_path / "out.mp4"), FilterGraph(), on_progress=progress.append
            )

        error = exc_info.value
        assert error.returncode == 1
        assert len(error.diagnostic_tail) == 20
        assert error.diagnostic_tail[0] == "diagnostic line 10"
        assert error.diagnostic_tail[-1] == "diagnostic line 29"
        assert error.to_dict()["kind"] == "process"
        assert 100 not in progress

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path):
        driver = RenderProcessDriver(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))

        with pytest.raises(RenderProcessError) as exc_info:
            await driver.run("in.mp4", str(tmp_path / "out.mp4"), FilterGraph())

        assert "Failed to start FFmpeg" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, make_fake_ffmpeg, tmp_path):
        script = make_fake_ffmpeg(BANNER, sleep_seconds=30)

        with pytest.raises(RenderCancelledError):
            await RenderProcessDriver(ffmpeg_path=script).run(
                "in.mp4", str(tmp_path / "out.mp4"), FilterGraph(), timeout=0.5
            )

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, make_fake_ffmpeg, tmp_path):
        script = make_fake_ffmpeg(BANNER, sleep_seconds=30)
        driver = RenderProcessDriver(ffmpeg_path=script)

        task = asyncio.create_task(driver.run("in.mp4", str(tmp_path / "out.mp4"), FilterGraph()))
        await asyncio.sleep(0.3)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
