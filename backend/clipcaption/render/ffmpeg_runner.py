"""Render process driver.

Runs a single FFmpeg invocation for a FilterGraph, streams its stderr for
progress, and turns failures into RenderProcessError with the tail of the
diagnostic output attached.
"""

import asyncio
import logging
import re
from collections import deque
from collections.abc import Callable
from typing import Optional

from clipcaption.config import get_settings
from clipcaption.exceptions import RenderCancelledError, RenderProcessError
from clipcaption.render.filter_graph import FilterGraph

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_TIME_RE = re.compile(r"time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
# FFmpeg rewrites its status line with \r, so both terminators end a line
_LINE_SPLIT_RE = re.compile(r"[\r\n]")

_READ_CHUNK = 4096

ProgressCallback = Callable[[int], None]


def _to_seconds(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_duration(line: str) -> Optional[float]:
    """Total input duration from an FFmpeg banner line, if present."""
    match = _DURATION_RE.search(line)
    if match is None:
        return None
    return _to_seconds(*match.groups())


def parse_elapsed(line: str) -> Optional[float]:
    """Encoded position from an FFmpeg status line, if present."""
    match = _TIME_RE.search(line)
    if match is None:
        return None
    return _to_seconds(*match.groups())


def compute_percent(elapsed: float, duration: float) -> int:
    if duration <= 0:
        return 0
    return max(0, min(round(elapsed / duration * 100), 100))


class RenderProcessDriver:
    """Executes one filter graph against one source file."""

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        preset: Optional[str] = None,
        crf: Optional[int] = None,
        tail_lines: Optional[int] = None,
    ):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.preset = preset or settings.ffmpeg_preset
        self.crf = settings.ffmpeg_crf if crf is None else crf
        self.tail_lines = tail_lines or settings.ffmpeg_diagnostic_tail_lines

    def build_command(self, source_path: str, output_path: str, graph: FilterGraph) -> list[str]:
        cmd = [self.ffmpeg_path, "-y", "-i", source_path]
        for image_path in graph.image_inputs:
            cmd.extend(["-i", image_path])
        cmd.extend([
            "-filter_complex", graph.serialize(),
            "-map", f"[{graph.output_label}]",
            "-map", "0:a?",
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", "yuv420p",
            "-c:a", "copy",
            output_path,
        ])
        return cmd

    async def run(
        self,
        source_path: str,
        output_path: str,
        graph: FilterGraph,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> float:
        """
        Run FFmpeg and wait for it to finish.

        Args:
            source_path: Input video (input 0)
            output_path: Destination file
            graph: Filter graph; serialized here
            on_progress: Called with 0-100 whenever the integer percent changes
            timeout: Seconds before the process is killed

        Returns:
            Input duration in seconds (0.0 when FFmpeg did not report one)

        Raises:
            RenderProcessError: Spawn failure or non-zero exit
            RenderCancelledError: Timeout
            asyncio.CancelledError: The awaiting task was cancelled
        """
        cmd = self.build_command(source_path, output_path, graph)
        logger.info(f"[FFMPEG] Starting render: {source_path} -> {output_path}")
        logger.debug(f"[FFMPEG] Command: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise RenderProcessError(f"Failed to start FFmpeg: {e}") from e

        tail: deque[str] = deque(maxlen=self.tail_lines)
        state = {"duration": 0.0, "last_percent": None}

        def emit(percent: int) -> None:
            if percent == state["last_percent"]:
                return
            state["last_percent"] = percent
            if on_progress is not None:
                on_progress(percent)

        def handle_line(line: str) -> None:
            line = line.strip()
            if not line:
                return
            tail.append(line)
            if not state["duration"]:
                duration = parse_duration(line)
                if duration:
                    state["duration"] = duration
                    return
            elapsed = parse_elapsed(line)
            if elapsed is not None and state["duration"]:
                emit(compute_percent(elapsed, state["duration"]))

        async def consume() -> int:
            buffer = ""
            while True:
                chunk = await proc.stderr.read(_READ_CHUNK)
                if not chunk:
                    break
                buffer += chunk.decode("utf-8", errors="replace")
                *lines, buffer = _LINE_SPLIT_RE.split(buffer)
                for line in lines:
                    handle_line(line)
            handle_line(buffer)
            return await proc.wait()

        try:
            returncode = await asyncio.wait_for(consume(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            logger.error(f"[FFMPEG] Timed out after {timeout}s, process killed")
            raise RenderCancelledError(f"Render timed out after {timeout}s")
        except asyncio.CancelledError:
            await self._kill(proc)
            logger.warning("[FFMPEG] Render cancelled, process killed")
            raise

        if returncode != 0:
            logger.error(
                f"[FFMPEG] Exited with code {returncode}. Last output:\n" + "\n".join(tail)
            )
            raise RenderProcessError(
                f"FFmpeg exited with code {returncode}",
                diagnostic_tail=list(tail),
                returncode=returncode,
            )

        emit(100)
        logger.info(f"[FFMPEG] Render complete: {output_path}")
        return state["duration"]

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
