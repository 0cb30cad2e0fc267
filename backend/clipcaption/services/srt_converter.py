"""SRT export for timed subtitle segments."""

from collections.abc import Sequence

from clipcaption.schemas.subtitle import TimedSubtitleSegment


def format_srt_time(seconds: float) -> str:
    """Format seconds as an SRT timestamp, e.g. 65.5 -> "00:01:05,500"."""
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def segments_to_srt(segments: Sequence[TimedSubtitleSegment]) -> str:
    """Render timed segments as an SRT document (1-based numbering)."""
    blocks = []
    for number, segment in enumerate(segments, start=1):
        start = format_srt_time(segment.start_time_seconds)
        end = format_srt_time(segment.end_time_seconds)
        text = "\n".join(segment.lines)
        blocks.append(f"{number}\n{start} --> {end}\n{text}")
    return "\n\n".join(blocks)
