"""Timestamp allocation: time AI-split subtitle text against the transcript.

The segmentation model only returns text. Timing is recovered by laying the
sentences and the segments out in one shared character space (punctuation
and whitespace stripped) and interpolating each segment boundary linearly
inside the sentence that contains it.

The allocation assumes the segments are a lossless re-partition of the
sentence text (same characters, same order). If the model adds or drops
characters the offsets drift; this is logged, not corrected.

Usage:
    sentences = filter_sentences_for_clip(all_sentences, clip_start, clip_end)
    timed = assign_timestamps(raw_segments, sentences, clip_start)
    # Returns: [TimedSubtitleSegment(index=0, lines=("こんにちは",), 0.0, 2.0), ...]
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from clipcaption.exceptions import (
    EmptySegmentsError,
    InvalidTimeRangeError,
    NoSentencesError,
    SegmentFormatError,
)
from clipcaption.schemas.subtitle import (
    MAX_CHARS_PER_LINE,
    MAX_LINES,
    RawSubtitleSegment,
    SourceSentence,
    TimedSubtitleSegment,
)

logger = logging.getLogger(__name__)

# Characters ignored when measuring text length for timing
_NORMALIZE_RE = re.compile(r"[、。！？\s]")


@dataclass(frozen=True)
class _SentenceRange:
    """Internal: a sentence placed in the shared character space."""

    sentence: SourceSentence
    char_start: int
    char_end: int

    @property
    def length(self) -> int:
        return self.char_end - self.char_start


def normalize_text(text: str) -> str:
    """Strip whitespace and sentence punctuation."""
    return _NORMALIZE_RE.sub("", text)


def filter_sentences_for_clip(
    sentences: Sequence[SourceSentence],
    clip_start_seconds: float,
    clip_end_seconds: float,
) -> list[SourceSentence]:
    """Keep sentences whose interval intersects [clip_start, clip_end)."""
    return [
        s
        for s in sentences
        if s.start_time_seconds < clip_end_seconds and s.end_time_seconds > clip_start_seconds
    ]


def validate_lines(lines: Sequence[str], segment_index: int) -> None:
    """Check one segment's lines against the display limits.

    Raises:
        SegmentFormatError: empty lines, too many lines, or a line too long
    """
    if not lines:
        raise SegmentFormatError(
            f"Segment {segment_index}: lines cannot be empty",
            segment_index=segment_index,
        )

    if len(lines) > MAX_LINES:
        raise SegmentFormatError(
            f"Segment {segment_index}: maximum {MAX_LINES} lines allowed, got {len(lines)}",
            segment_index=segment_index,
        )

    for line_index, line in enumerate(lines):
        if not isinstance(line, str):
            raise SegmentFormatError(
                f"Segment {segment_index}, line {line_index + 1}: not a string",
                segment_index=segment_index,
                line_index=line_index,
            )
        if len(line) > MAX_CHARS_PER_LINE:
            raise SegmentFormatError(
                f"Segment {segment_index}, line {line_index + 1}: maximum "
                f"{MAX_CHARS_PER_LINE} characters allowed, got {len(line)}",
                segment_index=segment_index,
                line_index=line_index,
            )


def validate_raw_segments(segments: Sequence[RawSubtitleSegment]) -> None:
    """Validate every raw segment before allocation."""
    for i, segment in enumerate(segments):
        validate_lines(segment.lines, i)


def validate_timed_segments(segments: Sequence[TimedSubtitleSegment]) -> None:
    """Validate caller-supplied (e.g. user edited) timed segments.

    Raises:
        EmptySegmentsError: no segments
        InvalidTimeRangeError: negative times, start after end, or index mismatch
        SegmentFormatError: line rules violated
    """
    if not segments:
        raise EmptySegmentsError("Subtitle must have at least one segment")

    for i, segment in enumerate(segments):
        if segment.index != i:
            raise InvalidTimeRangeError(f"Segment index mismatch at position {i}")
        if segment.start_time_seconds < 0 or segment.end_time_seconds < 0:
            raise InvalidTimeRangeError(f"Segment {i}: times must not be negative")
        if segment.start_time_seconds > segment.end_time_seconds:
            raise InvalidTimeRangeError(f"Segment {i}: start time must not be after end time")
        validate_lines(segment.lines, i)


def _build_sentence_ranges(sentences: Sequence[SourceSentence]) -> list[_SentenceRange]:
    ranges: list[_SentenceRange] = []
    char_pos = 0
    for sentence in sentences:
        length = len(normalize_text(sentence.text))
        ranges.append(_SentenceRange(sentence, char_pos, char_pos + length))
        char_pos += length
    return ranges


def _char_pos_to_time(
    char_pos: int,
    ranges: Sequence[_SentenceRange],
    clip_start_seconds: float,
) -> float:
    """Interpolate the clip-relative time at a character offset.

    A boundary offset matches the first range (in time order) that contains
    it, inclusive on both ends.
    """
    for r in ranges:
        if r.char_start <= char_pos <= r.char_end:
            sentence = r.sentence
            if r.length == 0:
                return sentence.start_time_seconds - clip_start_seconds
            ratio = (char_pos - r.char_start) / r.length
            duration = sentence.end_time_seconds - sentence.start_time_seconds
            return sentence.start_time_seconds + duration * ratio - clip_start_seconds

    # Past the last sentence
    return ranges[-1].sentence.end_time_seconds - clip_start_seconds


def assign_timestamps(
    segments: Sequence[RawSubtitleSegment],
    sentences: Sequence[SourceSentence],
    clip_start_seconds: float,
) -> list[TimedSubtitleSegment]:
    """Assign clip-relative timestamps to raw segments by character ratio.

    Args:
        segments: AI-split segments, in reading order
        sentences: Sentences already filtered to the clip range, time ordered
        clip_start_seconds: Clip start in source time

    Returns:
        Timed segments; start <= end and both >= 0 for every segment

    Raises:
        SegmentFormatError: a segment violates the line rules
        NoSentencesError: no sentences to time against
    """
    validate_raw_segments(segments)

    if not sentences:
        raise NoSentencesError()

    ranges = _build_sentence_ranges(sentences)
    total_sentence_chars = ranges[-1].char_end

    results: list[TimedSubtitleSegment] = []
    char_pos = 0
    for i, segment in enumerate(segments):
        seg_start = char_pos
        seg_end = seg_start + len(normalize_text("".join(segment.lines)))

        start = max(0.0, _char_pos_to_time(seg_start, ranges, clip_start_seconds))
        end = max(0.0, _char_pos_to_time(seg_end, ranges, clip_start_seconds))
        # Overlapping sentences can interpolate backwards across a boundary
        end = max(end, start)

        results.append(
            TimedSubtitleSegment(
                index=i,
                lines=segment.lines,
                start_time_seconds=start,
                end_time_seconds=end,
            )
        )
        char_pos = seg_end

    if char_pos != total_sentence_chars:
        logger.warning(
            f"[TIMESTAMP] Segment text length ({char_pos}) differs from sentence text "
            f"length ({total_sentence_chars}); boundaries may drift"
        )

    return results


def allocate_for_clip(
    segments: Sequence[RawSubtitleSegment],
    sentences: Sequence[SourceSentence],
    clip_start_seconds: float,
    clip_end_seconds: float,
) -> list[TimedSubtitleSegment]:
    """Filter sentences to the clip and assign timestamps in one call."""
    validate_raw_segments(segments)

    clip_sentences = filter_sentences_for_clip(sentences, clip_start_seconds, clip_end_seconds)
    if not clip_sentences:
        raise NoSentencesError(clip_start_seconds, clip_end_seconds)

    logger.info(
        f"[TIMESTAMP] Allocating {len(segments)} segments over "
        f"{len(clip_sentences)} sentences ({clip_start_seconds}s-{clip_end_seconds}s)"
    )
    return assign_timestamps(segments, clip_sentences, clip_start_seconds)
