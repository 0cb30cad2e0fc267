from clipcaption.schemas.job import JobStatus, PipelinePhase
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

__all__ = [
    "SourceSentence",
    "RawSubtitleSegment",
    "TimedSubtitleSegment",
    "SubtitleStyleOptions",
    "FormatConversionSpec",
    "OutputFormat",
    "RenderJob",
    "RenderStrategy",
    "PipelinePhase",
    "JobStatus",
]
