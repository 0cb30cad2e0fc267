"""Filter graph synthesis for subtitle burn-in.

A render is described as a small typed graph (optional scale/pad stage,
drawtext operations or image overlays) and only turned into FFmpeg's
``-filter_complex`` grammar by ``FilterGraph.serialize()``. All text
escaping happens in ``DrawTextOp.serialize()``.

Graph shapes:
    text overlay:   [0:v]scale,pad,drawtext,drawtext,...[vout]
    image overlay:  [0:v]scale,pad[base];[base][1:v]overlay=...[v1];...[vout]
    conversion:     [0:v]scale,pad[vout]
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Optional

from clipcaption.exceptions import EmptySegmentsError
from clipcaption.render.text_renderer import (
    SubtitleStyle,
    escape_drawtext,
    horizontal_padding,
    layout_line_positions,
    resolve_font_name,
    resolve_style,
    to_ffmpeg_color,
    valid_color_or,
)
from clipcaption.schemas.subtitle import (
    FormatConversionSpec,
    RenderJob,
    RenderStrategy,
    TimedSubtitleSegment,
)

logger = logging.getLogger(__name__)

OUTPUT_LABEL = "vout"
SOURCE_VIDEO = "0:v"


def _fmt_seconds(value: float) -> str:
    return f"{value:.3f}"


def build_enable_expr(start_s: float, end_s: float) -> str:
    """Time gate equivalent to start <= t < end."""
    return f"gte(t,{_fmt_seconds(start_s)})*lt(t,{_fmt_seconds(end_s)})"


@dataclass(frozen=True)
class ScalePadStage:
    """Scale to fit the target canvas, then pad to its exact size."""

    target_width: int
    target_height: int
    scale_width: int
    scale_height: int
    padding_color: str

    def serialize(self) -> str:
        return (
            f"scale={self.scale_width}:{self.scale_height},"
            f"pad={self.target_width}:{self.target_height}:(ow-iw)/2:(oh-ih)/2:"
            f"color={to_ffmpeg_color(self.padding_color)}"
        )


@dataclass(frozen=True)
class DrawTextOp:
    """One time-gated line of text."""

    text: str
    start_s: float
    end_s: float
    font: str
    font_size: int
    font_color: str
    outline_color: str
    outline_width: int
    shadow_color: str
    shadow_x: int
    shadow_y: int
    x: str
    y: int

    def serialize(self) -> str:
        return ":".join(
            [
                f"drawtext=text='{escape_drawtext(self.text)}'",
                f"enable='{build_enable_expr(self.start_s, self.end_s)}'",
                f"font='{escape_drawtext(self.font)}'",
                f"fontsize={self.font_size}",
                f"fontcolor={to_ffmpeg_color(self.font_color)}",
                f"bordercolor={to_ffmpeg_color(self.outline_color)}",
                f"borderw={self.outline_width}",
                f"shadowcolor={to_ffmpeg_color(self.shadow_color)}",
                f"shadowx={self.shadow_x}",
                f"shadowy={self.shadow_y}",
                f"x={self.x}",
                f"y={self.y}",
            ]
        )


@dataclass(frozen=True)
class OverlayOp:
    """Composite one pre-rasterized image input over the running video."""

    input_index: int
    start_s: float
    end_s: float

    def serialize(self, in_label: str, out_label: str) -> str:
        return (
            f"[{in_label}][{self.input_index}:v]overlay=0:0:"
            f"enable='{build_enable_expr(self.start_s, self.end_s)}'"
            f"[{out_label}]"
        )


@dataclass(frozen=True)
class FilterGraph:
    """Declarative render graph for a single FFmpeg invocation."""

    scale_pad: Optional[ScalePadStage] = None
    text_ops: tuple[DrawTextOp, ...] = ()
    overlay_ops: tuple[OverlayOp, ...] = ()
    # Extra inputs after the source video, in input index order (1, 2, ...)
    image_inputs: tuple[str, ...] = field(default=())

    @property
    def output_label(self) -> str:
        return OUTPUT_LABEL

    def serialize(self) -> str:
        """Render the graph in FFmpeg -filter_complex syntax."""
        if self.overlay_ops:
            return self._serialize_overlays()

        chain: list[str] = []
        if self.scale_pad is not None:
            chain.append(self.scale_pad.serialize())
        chain.extend(op.serialize() for op in self.text_ops)
        if not chain:
            chain.append("null")
        return f"[{SOURCE_VIDEO}]{','.join(chain)}[{OUTPUT_LABEL}]"

    def _serialize_overlays(self) -> str:
        parts: list[str] = []
        current = SOURCE_VIDEO
        if self.scale_pad is not None:
            parts.append(f"[{SOURCE_VIDEO}]{self.scale_pad.serialize()}[base]")
            current = "base"

        last = len(self.overlay_ops) - 1
        for i, op in enumerate(self.overlay_ops):
            out_label = OUTPUT_LABEL if i == last else f"v{i + 1}"
            parts.append(op.serialize(current, out_label))
            current = out_label
        return ";".join(parts)


def compute_scale_pad(
    source_width: int,
    source_height: int,
    spec: FormatConversionSpec,
) -> ScalePadStage:
    """Fit the source inside the target canvas keeping its aspect ratio.

    Wider-than-target sources are scaled to the target width, others to the
    target height; -2 keeps the other side even for the encoder.
    """
    source_aspect = source_width / source_height
    if source_aspect > spec.aspect_ratio:
        scale_width, scale_height = spec.target_width, -2
    else:
        scale_width, scale_height = -2, spec.target_height

    return ScalePadStage(
        target_width=spec.target_width,
        target_height=spec.target_height,
        scale_width=scale_width,
        scale_height=scale_height,
        padding_color=valid_color_or(spec.padding_color, "#000000"),
    )


class FilterChainSynthesizer:
    """Builds FilterGraphs from RenderJobs.

    Synthesis is deterministic: the same job always yields the same graph
    and therefore the same serialized string.
    """

    def synthesize(
        self,
        job: RenderJob,
        image_paths: Optional[Sequence[str]] = None,
    ) -> FilterGraph:
        """Build the graph for a job using the job's strategy.

        Args:
            job: Render job (segments, source dimensions, style, conversion)
            image_paths: One rasterized PNG per segment (image overlay only)

        Raises:
            EmptySegmentsError: job has no segments
            ValueError: image overlay without one image per segment
        """
        if not job.segments:
            raise EmptySegmentsError()

        scale_pad = None
        if job.format_conversion is not None:
            scale_pad = compute_scale_pad(job.width, job.height, job.format_conversion)

        if job.strategy == RenderStrategy.IMAGE_OVERLAY:
            if image_paths is None or len(image_paths) != len(job.segments):
                raise ValueError("Image overlay requires one image per segment")
            return self._image_overlay_graph(job.segments, image_paths, scale_pad)

        width, height = job.output_dimensions
        style = resolve_style(job.style, width)
        logger.info(
            f"[FILTER] {len(job.segments)} segments, {width}x{height}, "
            f"font={style.font_size}px outline={style.outline_width}px"
        )
        return FilterGraph(
            scale_pad=scale_pad,
            text_ops=tuple(self._text_ops(job.segments, style, width, height)),
        )

    def build_conversion_graph(
        self,
        source_width: int,
        source_height: int,
        spec: FormatConversionSpec,
    ) -> FilterGraph:
        """Graph for a conversion-only pass (no subtitles)."""
        return FilterGraph(scale_pad=compute_scale_pad(source_width, source_height, spec))

    def _text_ops(
        self,
        segments: Sequence[TimedSubtitleSegment],
        style: SubtitleStyle,
        width: int,
        height: int,
    ) -> list[DrawTextOp]:
        font_name = resolve_font_name(style.font_family, style.bold)
        x_expr = self._x_expression(style.alignment, width)

        ops: list[DrawTextOp] = []
        for segment in segments:
            positions = layout_line_positions(len(segment.lines), style.font_size, width, height)
            for line, y in zip(segment.lines, positions):
                ops.append(
                    DrawTextOp(
                        text=line,
                        start_s=segment.start_time_seconds,
                        end_s=segment.end_time_seconds,
                        font=font_name,
                        font_size=style.font_size,
                        font_color=style.font_color,
                        outline_color=style.outline_color,
                        outline_width=style.outline_width,
                        shadow_color=style.shadow_color,
                        shadow_x=style.shadow_offset_x,
                        shadow_y=style.shadow_offset_y,
                        x=x_expr,
                        y=y,
                    )
                )
        return ops

    def _image_overlay_graph(
        self,
        segments: Sequence[TimedSubtitleSegment],
        image_paths: Sequence[str],
        scale_pad: Optional[ScalePadStage],
    ) -> FilterGraph:
        overlays = tuple(
            OverlayOp(
                input_index=i + 1,  # 0 is the source video
                start_s=segment.start_time_seconds,
                end_s=segment.end_time_seconds,
            )
            for i, segment in enumerate(segments)
        )
        return FilterGraph(
            scale_pad=scale_pad,
            overlay_ops=overlays,
            image_inputs=tuple(image_paths),
        )

    @staticmethod
    def _x_expression(alignment: str, width: int) -> str:
        if alignment == "left":
            return str(horizontal_padding(width))
        if alignment == "right":
            return f"w-text_w-{horizontal_padding(width)}"
        return "(w-text_w)/2"
