"""Task payload for subtitle composition jobs."""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from clipcaption.config import get_settings
from clipcaption.render.pipeline import ComposeJob
from clipcaption.schemas.subtitle import (
    OutputFormat,
    RawSubtitleSegment,
    RenderStrategy,
    SourceSentence,
    SubtitleStyleOptions,
    TimedSubtitleSegment,
)

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _default_font_size() -> str:
    return get_settings().subtitle_default_font_size


class SentencePayload(BaseModel):
    text: str
    start_time_seconds: float = Field(..., ge=0)
    end_time_seconds: float = Field(..., ge=0)


class RawSegmentPayload(BaseModel):
    lines: list[str]


class TimedSegmentPayload(BaseModel):
    index: int = Field(..., ge=0)
    lines: list[str]
    start_time_seconds: float
    end_time_seconds: float


class StylePayload(BaseModel):
    font_size: Literal["small", "medium", "large"] = Field(default_factory=_default_font_size)
    font_family: str | None = None
    font_color: str | None = None
    outline_color: str | None = None
    shadow_color: str | None = None
    shadow_offset_x: int | None = None
    shadow_offset_y: int | None = None
    alignment: Literal["left", "center", "right"] | None = None
    bold: bool | None = None

    def to_options(self) -> SubtitleStyleOptions:
        return SubtitleStyleOptions(**self.model_dump())


class ComposeRequest(BaseModel):
    """Composition request as queued for the worker.

    Line limits and timing rules are not checked here; they are enforced
    when the job is prepared so they surface as SegmentFormatError etc.
    """

    job_id: str = Field(..., min_length=1)
    source_ref: str = Field(..., min_length=1)
    destination_ref: str = Field(..., min_length=1)
    segments: list[TimedSegmentPayload] | None = None
    raw_segments: list[RawSegmentPayload] | None = None
    sentences: list[SentencePayload] = Field(default_factory=list)
    clip_start_seconds: float = Field(default=0.0, ge=0)
    clip_end_seconds: float | None = None
    output_format: Literal["original", "vertical", "horizontal"] = "original"
    padding_color: str | None = Field(
        default=None,
        description="HEX #RRGGBB used for letterbox/pillarbox bars",
    )
    style: StylePayload = Field(default_factory=StylePayload)
    strategy: Literal["text_overlay", "image_overlay"] | None = None

    @field_validator("padding_color")
    @classmethod
    def validate_padding_color(cls, v: str | None) -> str | None:
        if v is None or _HEX_COLOR_RE.match(v):
            return v
        raise ValueError('padding_color must be a HEX color like "#000000"')

    def to_job(self) -> ComposeJob:
        segments = None
        if self.segments is not None:
            segments = [
                TimedSubtitleSegment(
                    index=s.index,
                    lines=tuple(s.lines),
                    start_time_seconds=s.start_time_seconds,
                    end_time_seconds=s.end_time_seconds,
                )
                for s in self.segments
            ]

        raw_segments = None
        if self.raw_segments is not None:
            raw_segments = [RawSubtitleSegment(lines=tuple(s.lines)) for s in self.raw_segments]

        return ComposeJob(
            job_id=self.job_id,
            source_ref=self.source_ref,
            destination_ref=self.destination_ref,
            segments=segments,
            raw_segments=raw_segments,
            sentences=[
                SourceSentence(s.text, s.start_time_seconds, s.end_time_seconds)
                for s in self.sentences
            ],
            clip_start_seconds=self.clip_start_seconds,
            clip_end_seconds=self.clip_end_seconds,
            output_format=OutputFormat(self.output_format),
            padding_color=self.padding_color,
            style=self.style.to_options(),
            strategy=RenderStrategy(self.strategy) if self.strategy else None,
        )
