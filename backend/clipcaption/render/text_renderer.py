"""Subtitle styling, layout and rasterization.

Features:
- Style resolution (size keyword scaled to output width + overrides + defaults)
- Aspect-ratio aware vertical placement
- FFmpeg drawtext escaping and color conversion
- Transparent PNG rasterization with Pillow for the image overlay strategy
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from clipcaption.config import get_settings
from clipcaption.schemas.subtitle import SubtitleStyleOptions

logger = logging.getLogger(__name__)

# Font size relative to the output width
FONT_SIZE_RATIO: dict[str, float] = {
    "small": 96 / 1920,
    "medium": 120 / 1920,
    "large": 148 / 1920,
}

# Outline width relative to the font size
OUTLINE_RATIO: dict[str, float] = {
    "small": 8 / 64,
    "medium": 10 / 80,
    "large": 12 / 96,
}

LINE_HEIGHT_MULTIPLIER = 1.5

# Outputs at or below this width/height ratio are treated as vertical
VERTICAL_ASPECT_THRESHOLD = 0.7

# Lower-third anchor for horizontal outputs
HORIZONTAL_ANCHOR = 0.8

# Margin for left/right aligned text, relative to output width
HORIZONTAL_PADDING_RATIO = 0.05

_HEX_COLOR_RE = re.compile(r"^#?(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

# Font family -> candidate font files for Pillow (macOS -> Linux fallback)
FONT_CANDIDATES: dict[str, list[str]] = {
    "Noto Sans CJK JP": [
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
        "/usr/share/fonts/truetype/noto/NotoSansCJK-Regular.ttc",
        "/System/Library/Fonts/ヒラギノ角ゴシック W3.ttc",
    ],
    "Noto Sans CJK JP Bold": [
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Black.ttc",
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
        "/usr/share/fonts/truetype/noto/NotoSansCJK-Bold.ttc",
        "/System/Library/Fonts/ヒラギノ角ゴシック W6.ttc",
    ],
    "Hiragino Sans": [
        "/System/Library/Fonts/ヒラギノ角ゴシック W3.ttc",
    ],
    "Hiragino Sans Bold": [
        "/System/Library/Fonts/ヒラギノ角ゴシック W6.ttc",
    ],
}


@dataclass(frozen=True)
class SubtitleStyle:
    """Fully resolved subtitle style in pixels."""

    font_family: str
    font_size: int
    font_color: str
    outline_color: str
    outline_width: int
    shadow_color: str
    shadow_offset_x: int
    shadow_offset_y: int
    alignment: str
    bold: bool


def _default_style_values() -> dict:
    settings = get_settings()
    return {
        "font_family": settings.subtitle_font_family,
        "font_color": "#FFFFFF",
        "outline_color": settings.subtitle_default_outline_color,
        "shadow_color": "#000000",
        "shadow_offset_x": 2,
        "shadow_offset_y": 2,
        "alignment": "center",
        "bold": True,
    }


def calc_font_metrics(size_keyword: str, video_width: int) -> tuple[int, int]:
    """Return (font_size_px, outline_width_px) for an output width.

    Unknown keywords fall back to "medium".
    """
    if size_keyword not in FONT_SIZE_RATIO:
        logger.warning(f"[STYLE] Unknown font size '{size_keyword}', using medium")
        size_keyword = "medium"
    font_size = round(video_width * FONT_SIZE_RATIO[size_keyword])
    outline_width = round(font_size * OUTLINE_RATIO[size_keyword])
    return font_size, outline_width


def resolve_style(options: Optional[SubtitleStyleOptions], output_width: int) -> SubtitleStyle:
    """Merge caller options with hard defaults; never fails."""
    options = options or SubtitleStyleOptions()
    defaults = _default_style_values()
    font_size, outline_width = calc_font_metrics(options.font_size, output_width)

    def pick(name: str):
        value = getattr(options, name)
        return defaults[name] if value is None else value

    alignment = pick("alignment")
    if alignment not in ("left", "center", "right"):
        alignment = "center"

    return SubtitleStyle(
        font_family=pick("font_family"),
        font_size=font_size,
        font_color=valid_color_or(pick("font_color"), defaults["font_color"]),
        outline_color=valid_color_or(pick("outline_color"), defaults["outline_color"]),
        outline_width=outline_width,
        shadow_color=valid_color_or(pick("shadow_color"), defaults["shadow_color"]),
        shadow_offset_x=int(pick("shadow_offset_x")),
        shadow_offset_y=int(pick("shadow_offset_y")),
        alignment=alignment,
        bold=bool(pick("bold")),
    )


def valid_color_or(color: str, fallback: str) -> str:
    if isinstance(color, str) and _HEX_COLOR_RE.match(color):
        return color
    logger.warning(f"[STYLE] Unrecognized color '{color}', using {fallback}")
    return fallback


def _expand_hex(color: str) -> str:
    hex_color = color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join(c * 2 for c in hex_color)
    return hex_color.upper()


def to_ffmpeg_color(color: str) -> str:
    """Convert #RRGGBB / #RGB / #RRGGBBAA to FFmpeg's 0xRRGGBB[AA]."""
    return f"0x{_expand_hex(color)}"


def hex_to_rgba(color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    hex_color = _expand_hex(color)
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    # 8-char hex (RRGGBBAA): embedded alpha overrides the parameter
    if len(hex_color) == 8:
        alpha = int(hex_color[6:8], 16)
    return (r, g, b, alpha)


def resolve_font_name(font_family: str, bold: bool) -> str:
    """Map a family to its heavy-weight face name when bold."""
    if not bold:
        return font_family
    if "Hiragino" in font_family:
        return f"{font_family} W6"
    if "Noto Sans CJK" in font_family:
        return f"{font_family} Black"
    return font_family


def escape_drawtext(text: str) -> str:
    """Escape text for a single-quoted drawtext value inside a filter graph.

    FFmpeg unescapes the value twice (graph parser, then option parser)
    before drawtext expands it, so drawtext receives ``\\\\`` for a
    backslash and ``\\%`` for a percent sign. A quote closes the quoted run,
    is emitted escaped for both levels, and reopens it.
    """
    return (
        text.replace("\\", "\\\\\\\\")
        .replace("'", "'\\\\\\''")
        .replace(":", "\\:")
        .replace("%", "\\\\\\%")
    )


def calculate_vertical_anchor(width: int, height: int) -> float:
    """Vertical center of the subtitle block as a fraction of height.

    Vertical outputs place the block just below a centered square safe area;
    other outputs use the lower third.
    """
    aspect_ratio = width / height
    if aspect_ratio <= VERTICAL_ASPECT_THRESHOLD:
        square_bottom_ratio = (height + width) / (2 * height)
        return square_bottom_ratio - 0.03
    return HORIZONTAL_ANCHOR


def layout_line_positions(line_count: int, font_size: int, width: int, height: int) -> list[int]:
    """Top y (pixels) of each line in a segment block."""
    line_height = font_size * LINE_HEIGHT_MULTIPLIER
    block_height = line_count * line_height
    base_y = calculate_vertical_anchor(width, height) * height - block_height / 2
    return [round(base_y + i * line_height) for i in range(line_count)]


def horizontal_padding(width: int) -> int:
    return round(width * HORIZONTAL_PADDING_RATIO)


class SubtitleRasterizer:
    """Renders subtitle segments to full-frame transparent PNGs."""

    def __init__(self, font_path: Optional[str] = None):
        self.settings = get_settings()
        self._font_path = font_path or self.settings.subtitle_font_path or None
        self._font_cache: dict[tuple[str, bool, int], ImageFont.ImageFont] = {}

    def _load_font(self, style: SubtitleStyle):
        key = (style.font_family, style.bold, style.font_size)
        if key in self._font_cache:
            return self._font_cache[key]

        if self._font_path:
            candidates = [self._font_path]
        else:
            name = f"{style.font_family} Bold" if style.bold else style.font_family
            candidates = FONT_CANDIDATES.get(name, FONT_CANDIDATES.get(style.font_family, []))
            # Always append default sans candidates as final fallback
            default_candidates = FONT_CANDIDATES["Noto Sans CJK JP"]
            candidates = candidates + [c for c in default_candidates if c not in candidates]

        font = None
        for candidate_path in candidates:
            try:
                font = ImageFont.truetype(candidate_path, style.font_size)
                logger.info(f"[TEXT] Loaded font: {candidate_path}")
                break
            except OSError:
                continue

        if font is None:
            logger.warning("[TEXT] No suitable font found, using PIL default")
            font = ImageFont.load_default(size=style.font_size)

        self._font_cache[key] = font
        return font

    def render_segment(
        self,
        lines: Sequence[str],
        style: SubtitleStyle,
        width: int,
        height: int,
        output_path: str,
    ) -> Path:
        """Draw one segment at its final position on a transparent canvas.

        Uses the same layout as the drawtext strategy so both strategies
        place captions identically.
        """
        font = self._load_font(style)

        fill = hex_to_rgba(style.font_color)
        stroke = hex_to_rgba(style.outline_color)
        shadow = hex_to_rgba(style.shadow_color)

        img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)
        padding = horizontal_padding(width)

        for line, y in zip(lines, layout_line_positions(len(lines), style.font_size, width, height)):
            bbox = font.getbbox(line or " ")
            line_width = bbox[2] - bbox[0]
            if style.alignment == "left":
                x = padding
            elif style.alignment == "right":
                x = width - line_width - padding
            else:
                x = (width - line_width) / 2

            if style.shadow_offset_x or style.shadow_offset_y:
                draw.text(
                    (x + style.shadow_offset_x, y + style.shadow_offset_y),
                    line,
                    font=font,
                    fill=shadow,
                    stroke_width=style.outline_width,
                    stroke_fill=shadow,
                )
            draw.text(
                (x, y),
                line,
                font=font,
                fill=fill,
                stroke_width=style.outline_width,
                stroke_fill=stroke,
            )

        img.save(output_path, "PNG")
        logger.info(f"[TEXT] Generated PNG: {output_path} ({width}x{height})")
        return Path(output_path)
