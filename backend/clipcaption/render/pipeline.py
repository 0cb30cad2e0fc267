"""Composition pipeline: download, (convert), compose, upload.

One run handles one job end to end:

    downloading (0-20%)  source media -> scratch workspace
    converting  (20-40%) only when an output format is requested; folded
                         into the composing pass unless fusion is disabled
    composing   (->80%)  allocate/validate timing, synthesize the filter
                         graph, run FFmpeg
    uploading   (80-100%) rendered file -> media store, signed URL

Input errors are raised before the job is marked processing. Every later
failure marks the job failed and is re-raised; the scratch workspace is
removed on every exit path.
"""

import asyncio
import logging
import math
import os
import shutil
import tempfile
from collections.abc import AsyncIterator, Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from clipcaption.config import get_settings
from clipcaption.exceptions import (
    ClipCaptionError,
    EmptySegmentsError,
    ErrorKind,
    RenderCancelledError,
    SourceMediaNotFoundError,
    StorageTransportError,
    WorkspaceError,
)
from clipcaption.render.ffmpeg_runner import RenderProcessDriver
from clipcaption.render.filter_graph import FilterChainSynthesizer
from clipcaption.render.progress import PhaseProgressReporter
from clipcaption.render.text_renderer import SubtitleRasterizer, resolve_style
from clipcaption.schemas.job import (
    COMPOSING_RANGE_WITHOUT_CONVERSION,
    PHASE_RANGES,
    JobStatus,
    PipelinePhase,
)
from clipcaption.schemas.subtitle import (
    FormatConversionSpec,
    OutputFormat,
    RawSubtitleSegment,
    RenderJob,
    RenderStrategy,
    SourceSentence,
    SubtitleStyleOptions,
    TimedSubtitleSegment,
)
from clipcaption.services.timestamp_allocator import allocate_for_clip, validate_timed_segments
from clipcaption.utils.media_info import get_video_dimensions

logger = logging.getLogger(__name__)


# ============================================================================
# Dataclasses
# ============================================================================


@dataclass
class ComposeJob:
    """One subtitle composition request.

    Either ``segments`` (already timed, e.g. user edited) or ``raw_segments``
    plus ``sentences`` (timed here against the transcript) must be given.
    """

    job_id: str
    source_ref: str
    destination_ref: str
    segments: Optional[Sequence[TimedSubtitleSegment]] = None
    raw_segments: Optional[Sequence[RawSubtitleSegment]] = None
    sentences: Sequence[SourceSentence] = ()
    clip_start_seconds: float = 0.0
    clip_end_seconds: Optional[float] = None
    output_format: OutputFormat = OutputFormat.ORIGINAL
    padding_color: Optional[str] = None
    style: SubtitleStyleOptions = field(default_factory=SubtitleStyleOptions)
    strategy: Optional[RenderStrategy] = None


@dataclass
class ComposeResult:
    """Outcome of a completed composition."""

    job_id: str
    output_ref: str
    output_url: str
    expires_at: Optional[datetime]
    segments: list[TimedSubtitleSegment]
    duration_seconds: float
    output_width: int
    output_height: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "status": JobStatus.COMPLETED.value,
            "output_ref": self.output_ref,
            "output_url": self.output_url,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "segments": [s.to_dict() for s in self.segments],
            "duration_seconds": self.duration_seconds,
            "output_width": self.output_width,
            "output_height": self.output_height,
        }


# ============================================================================
# Scratch workspace
# ============================================================================


def cleanup_workspace(path: Path) -> None:
    """Delete every entry in the workspace, then the workspace itself.

    Errors are logged and swallowed.
    """
    try:
        entries = list(path.iterdir())
    except OSError as e:
        logger.warning(f"[CLEANUP] Cannot list workspace {path}: {e}")
        entries = []

    for entry in entries:
        try:
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        except OSError as e:
            logger.warning(f"[CLEANUP] Failed to delete {entry}: {e}")

    try:
        path.rmdir()
    except OSError as e:
        logger.warning(f"[CLEANUP] Failed to remove workspace {path}: {e}")
    else:
        logger.info(f"[CLEANUP] Removed workspace {path}")


@contextmanager
def scratch_workspace(prefix: str) -> Iterator[Path]:
    """Fresh per-job directory, removed when the block exits."""
    try:
        path = Path(tempfile.mkdtemp(prefix=prefix))
    except OSError as e:
        raise WorkspaceError(f"Failed to allocate scratch workspace: {e}") from e

    try:
        yield path
    finally:
        cleanup_workspace(path)


async def iter_file(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    """Read a local file in chunks without blocking the event loop."""
    try:
        with open(path, "rb") as f:
            while True:
                chunk = await asyncio.to_thread(f.read, chunk_size)
                if not chunk:
                    break
                yield chunk
    except OSError as e:
        raise StorageTransportError(f"Failed to read {path}: {e}") from e


# ============================================================================
# Pipeline
# ============================================================================


class CompositionPipeline:
    """Runs composition jobs against a media store and a status sink."""

    def __init__(
        self,
        store,
        sink,
        driver: Optional[RenderProcessDriver] = None,
        synthesizer: Optional[FilterChainSynthesizer] = None,
        rasterizer: Optional[SubtitleRasterizer] = None,
        probe: Callable[[str], tuple[int, int]] = get_video_dimensions,
        fuse_conversion: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.settings = settings
        self.store = store
        self.sink = sink
        self.driver = driver or RenderProcessDriver()
        self.synthesizer = synthesizer or FilterChainSynthesizer()
        self._rasterizer = rasterizer
        self.probe = probe
        self.fuse_conversion = (
            settings.compose_fuse_format_conversion if fuse_conversion is None else fuse_conversion
        )
        self.timeout_seconds = (
            settings.compose_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.workspace_prefix = settings.compose_workspace_prefix
        self.chunk_size = settings.compose_download_chunk_bytes

    @property
    def rasterizer(self) -> SubtitleRasterizer:
        if self._rasterizer is None:
            self._rasterizer = SubtitleRasterizer()
        return self._rasterizer

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    def prepare_segments(self, job: ComposeJob) -> list[TimedSubtitleSegment]:
        """Resolve the job's timed segments.

        Raises:
            EmptySegmentsError / SegmentFormatError / InvalidTimeRangeError /
            NoSentencesError: input problems
        """
        if job.segments is not None:
            segments = list(job.segments)
            validate_timed_segments(segments)
            return segments

        if not job.raw_segments:
            raise EmptySegmentsError()

        clip_end = math.inf if job.clip_end_seconds is None else job.clip_end_seconds
        return allocate_for_clip(
            job.raw_segments, job.sentences, job.clip_start_seconds, clip_end
        )

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        job: ComposeJob,
        cancel_check: Optional[Callable[[], Any]] = None,
    ) -> ComposeResult:
        """
        Execute the full composition pipeline for one job.

        Args:
            job: Composition request
            cancel_check: Optional (async) callable polled between phases;
                returns True to cancel

        Returns:
            ComposeResult with the uploaded reference and signed URL

        Raises:
            ClipCaptionError: Input, resource, process, transport or
                cancellation failure
            asyncio.CancelledError: The running task was cancelled
        """
        segments = self.prepare_segments(job)
        job_id = job.job_id

        logger.info(
            f"[COMPOSE] Job {job_id}: {len(segments)} segments, "
            f"{job.source_ref} -> {job.destination_ref} ({job.output_format.value})"
        )
        await self._notify_status(job_id, JobStatus.PROCESSING)
        reporter = PhaseProgressReporter(self.sink, job_id)

        try:
            with scratch_workspace(self.workspace_prefix) as workspace:
                result = await self._run_with_timeout(
                    self._execute(job, segments, workspace, reporter, cancel_check)
                )
        except asyncio.CancelledError:
            await self._fail(job_id, reporter, "Cancelled: job was cancelled")
            raise
        except ClipCaptionError as e:
            if e.kind == ErrorKind.CANCELLED:
                message = f"Cancelled: {e.message}"
            else:
                message = e.message
            await self._fail(job_id, reporter, message)
            raise
        except Exception as e:
            logger.exception(f"[COMPOSE] Job {job_id}: unexpected error")
            await self._fail(job_id, reporter, f"Internal error: {e}")
            raise

        await reporter.drain()
        await self._notify_status(job_id, JobStatus.COMPLETED, output_url=result.output_url)
        logger.info(f"[COMPOSE] Job {job_id}: completed -> {result.output_ref}")
        return result

    async def _run_with_timeout(self, coro):
        if not self.timeout_seconds:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise RenderCancelledError(f"Job timed out after {self.timeout_seconds}s") from e

    async def _execute(
        self,
        job: ComposeJob,
        segments: list[TimedSubtitleSegment],
        workspace: Path,
        reporter: PhaseProgressReporter,
        cancel_check: Optional[Callable[[], Any]],
    ) -> ComposeResult:
        # Step 1: Download source
        await self._check_cancelled(cancel_check)
        reporter.begin_phase(PipelinePhase.DOWNLOADING, *PHASE_RANGES[PipelinePhase.DOWNLOADING])
        source_path = await self._download(job.source_ref, workspace, reporter)

        # Step 2: Format conversion
        await self._check_cancelled(cancel_check)
        padding_color = job.padding_color or self.settings.subtitle_default_padding_color
        conversion = FormatConversionSpec.for_output_format(job.output_format, padding_color)

        stage_input = source_path
        fused_conversion = None
        if conversion is not None:
            reporter.begin_phase(PipelinePhase.CONVERTING, *PHASE_RANGES[PipelinePhase.CONVERTING])
            if self.fuse_conversion:
                fused_conversion = conversion
                reporter.report(100)
            else:
                stage_input = await self._convert(source_path, conversion, workspace, reporter)
            compose_range = PHASE_RANGES[PipelinePhase.COMPOSING]
        else:
            compose_range = COMPOSING_RANGE_WITHOUT_CONVERSION

        # Step 3: Compose subtitles
        await self._check_cancelled(cancel_check)
        reporter.begin_phase(PipelinePhase.COMPOSING, *compose_range)
        width, height = await asyncio.to_thread(self.probe, str(stage_input))
        render_job = RenderJob(
            source_path=str(stage_input),
            output_path=str(workspace / "output.mp4"),
            segments=segments,
            width=width,
            height=height,
            style=job.style,
            format_conversion=fused_conversion,
            strategy=job.strategy or RenderStrategy(self.settings.subtitle_render_strategy),
        )
        duration = await self._compose(render_job, workspace, reporter)

        # Step 4: Upload
        await self._check_cancelled(cancel_check)
        reporter.begin_phase(PipelinePhase.UPLOADING, *PHASE_RANGES[PipelinePhase.UPLOADING])
        upload, output_url = await self._upload(
            Path(render_job.output_path), job.destination_ref, reporter
        )

        output_width, output_height = render_job.output_dimensions
        return ComposeResult(
            job_id=job.job_id,
            output_ref=upload.ref,
            output_url=output_url,
            expires_at=upload.expires_at,
            segments=segments,
            duration_seconds=duration,
            output_width=output_width,
            output_height=output_height,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _download(
        self,
        ref: str,
        workspace: Path,
        reporter: PhaseProgressReporter,
    ) -> Path:
        if not await self.store.file_exists(ref):
            raise SourceMediaNotFoundError(ref)

        try:
            total_bytes = await self.store.get_file_size(ref)
        except ClipCaptionError as e:
            logger.warning(f"[DOWNLOAD] Size unavailable for {ref}, progress indeterminate: {e}")
            total_bytes = None

        local_path = workspace / f"source{Path(ref).suffix or '.mp4'}"
        received = 0
        try:
            with open(local_path, "wb") as f:
                async for chunk in self.store.download_as_stream(ref):
                    await asyncio.to_thread(f.write, chunk)
                    received += len(chunk)
                    if total_bytes:
                        reporter.report(received / total_bytes * 100)
        except OSError as e:
            raise WorkspaceError(f"Failed to write {local_path}: {e}") from e

        reporter.report(100)
        logger.info(f"[DOWNLOAD] {ref} -> {local_path} ({received} bytes)")
        return local_path

    async def _convert(
        self,
        source_path: Path,
        conversion: FormatConversionSpec,
        workspace: Path,
        reporter: PhaseProgressReporter,
    ) -> Path:
        width, height = await asyncio.to_thread(self.probe, str(source_path))
        graph = self.synthesizer.build_conversion_graph(width, height, conversion)
        converted_path = workspace / "converted.mp4"
        logger.info(
            f"[CONVERT] {width}x{height} -> "
            f"{conversion.target_width}x{conversion.target_height}"
        )
        await self.driver.run(
            str(source_path),
            str(converted_path),
            graph,
            on_progress=reporter.report,
        )
        return converted_path

    async def _compose(
        self,
        render_job: RenderJob,
        workspace: Path,
        reporter: PhaseProgressReporter,
    ) -> float:
        image_paths = None
        if render_job.strategy == RenderStrategy.IMAGE_OVERLAY:
            image_paths = await asyncio.to_thread(self._rasterize, render_job, workspace)

        graph = self.synthesizer.synthesize(render_job, image_paths)
        return await self.driver.run(
            render_job.source_path,
            render_job.output_path,
            graph,
            on_progress=reporter.report,
        )

    def _rasterize(self, render_job: RenderJob, workspace: Path) -> list[str]:
        width, height = render_job.output_dimensions
        style = resolve_style(render_job.style, width)
        paths = []
        for segment in render_job.segments:
            path = workspace / f"subtitle_{segment.index:04d}.png"
            self.rasterizer.render_segment(segment.lines, style, width, height, str(path))
            paths.append(str(path))
        return paths

    async def _upload(
        self,
        output_path: Path,
        destination_ref: str,
        reporter: PhaseProgressReporter,
    ):
        try:
            total_bytes = os.path.getsize(output_path)
        except OSError as e:
            raise StorageTransportError(f"Rendered file missing: {output_path}: {e}") from e

        def on_bytes(sent: int) -> None:
            if total_bytes:
                reporter.report(sent / total_bytes * 100)

        upload = await self.store.upload_from_stream_with_progress(
            destination_ref,
            iter_file(output_path, self.chunk_size),
            on_bytes=on_bytes,
        )
        output_url = await self.store.get_signed_url(upload.ref)
        reporter.report(100)
        return upload, output_url

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    async def _check_cancelled(self, cancel_check: Optional[Callable[[], Any]]) -> None:
        if cancel_check is None:
            return
        result = cancel_check()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            raise RenderCancelledError("Job cancelled")

    async def _notify_status(
        self,
        job_id: str,
        status: JobStatus,
        error_message: Optional[str] = None,
        output_url: Optional[str] = None,
    ) -> None:
        try:
            await self.sink.update_status(
                job_id, status, error_message=error_message, output_url=output_url
            )
        except Exception as e:
            logger.warning(f"[COMPOSE] Status update to {status.value} failed for {job_id}: {e}")

    async def _fail(self, job_id: str, reporter: PhaseProgressReporter, message: str) -> None:
        logger.error(f"[COMPOSE] Job {job_id} failed: {message}")
        await reporter.drain()
        await self._notify_status(job_id, JobStatus.FAILED, error_message=message)
