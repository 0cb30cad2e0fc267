"""Media file information utilities using FFprobe."""

import json
import subprocess

from clipcaption.config import get_settings
from clipcaption.exceptions import MediaProbeError


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise MediaProbeError(f"Failed to run ffprobe: {e}") from e
    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed on {file_path}: {result.stderr.strip()}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}") from e


def _rotation_degrees(stream: dict) -> int:
    """Display rotation from the stream's rotate tag or display matrix."""
    rotate = stream.get("tags", {}).get("rotate")
    if rotate is not None:
        try:
            return int(float(rotate)) % 360
        except ValueError:
            return 0
    for side_data in stream.get("side_data_list", []):
        if "rotation" in side_data:
            return int(float(side_data["rotation"])) % 360
    return 0


def get_video_dimensions(file_path: str) -> tuple[int, int]:
    """
    Get displayed video width and height.

    FFmpeg autorotates on decode, so a 90/270 degree rotation flag swaps
    the stored width and height.

    Args:
        file_path: Path to video file

    Returns:
        Tuple of (width, height)

    Raises:
        MediaProbeError: If ffprobe fails or video stream not found
    """
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "v:0")

    streams = data.get("streams", [])
    if not streams:
        raise MediaProbeError(f"No video stream found in: {file_path}")

    stream = streams[0]
    width = stream.get("width")
    height = stream.get("height")

    if not width or not height:
        raise MediaProbeError(f"Video dimensions not found in: {file_path}")

    if _rotation_degrees(stream) in (90, 270):
        width, height = height, width

    return int(width), int(height)
