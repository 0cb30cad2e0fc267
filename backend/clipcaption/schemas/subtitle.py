"""Core subtitle and render data types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

# Maximum characters per displayed subtitle line
MAX_CHARS_PER_LINE = 16

# Maximum lines per subtitle segment
MAX_LINES = 2


@dataclass(frozen=True)
class SourceSentence:
    """Transcript sentence with ground-truth timing (source relative seconds)."""

    text: str
    start_time_seconds: float
    end_time_seconds: float


@dataclass(frozen=True)
class RawSubtitleSegment:
    """AI-segmented subtitle text without timing."""

    lines: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


@dataclass(frozen=True)
class TimedSubtitleSegment:
    """Subtitle segment with clip-relative timing."""

    index: int
    lines: tuple[str, ...]
    start_time_seconds: float
    end_time_seconds: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def duration_seconds(self) -> float:
        return self.end_time_seconds - self.start_time_seconds

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "index": self.index,
            "lines": list(self.lines),
            "start_time_seconds": self.start_time_seconds,
            "end_time_seconds": self.end_time_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimedSubtitleSegment":
        return cls(
            index=int(data["index"]),
            lines=tuple(data.get("lines", ())),
            start_time_seconds=float(data["start_time_seconds"]),
            end_time_seconds=float(data["end_time_seconds"]),
        )


class OutputFormat(Enum):
    """Requested output aspect ratio."""

    ORIGINAL = "original"
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class RenderStrategy(Enum):
    """How subtitles are drawn onto the video."""

    TEXT_OVERLAY = "text_overlay"
    IMAGE_OVERLAY = "image_overlay"


# Target canvas for each converted output format
OUTPUT_FORMAT_DIMENSIONS: dict[OutputFormat, tuple[int, int]] = {
    OutputFormat.VERTICAL: (1080, 1920),
    OutputFormat.HORIZONTAL: (1920, 1080),
}


@dataclass(frozen=True)
class FormatConversionSpec:
    """Scale + pad to an exact target canvas."""

    target_width: int
    target_height: int
    padding_color: str = "#000000"

    @property
    def aspect_ratio(self) -> float:
        return self.target_width / self.target_height

    @classmethod
    def for_output_format(
        cls,
        output_format: OutputFormat,
        padding_color: str = "#000000",
    ) -> Optional["FormatConversionSpec"]:
        """Return the conversion for an output format, or None for original."""
        dims = OUTPUT_FORMAT_DIMENSIONS.get(output_format)
        if dims is None:
            return None
        return cls(target_width=dims[0], target_height=dims[1], padding_color=padding_color)


@dataclass(frozen=True)
class SubtitleStyleOptions:
    """Caller-selected style: size keyword plus optional overrides.

    Any field left as None falls back to the hard defaults when the style is
    resolved against the output width.
    """

    font_size: str = "medium"  # small, medium, large
    font_family: Optional[str] = None
    font_color: Optional[str] = None
    outline_color: Optional[str] = None
    shadow_color: Optional[str] = None
    shadow_offset_x: Optional[int] = None
    shadow_offset_y: Optional[int] = None
    alignment: Optional[str] = None
    bold: Optional[bool] = None


@dataclass(frozen=True)
class RenderJob:
    """One subtitle render: the unit handed to the filter synthesizer."""

    source_path: str
    output_path: str
    segments: tuple[TimedSubtitleSegment, ...]
    width: int
    height: int
    style: SubtitleStyleOptions = field(default_factory=SubtitleStyleOptions)
    format_conversion: Optional[FormatConversionSpec] = None
    strategy: RenderStrategy = RenderStrategy.TEXT_OVERLAY

    def __post_init__(self) -> None:
        object.__setattr__(self, "segments", tuple(self.segments))

    @property
    def output_dimensions(self) -> tuple[int, int]:
        """Canvas the subtitles are drawn on (post-conversion)."""
        if self.format_conversion is not None:
            return self.format_conversion.target_width, self.format_conversion.target_height
        return self.width, self.height
