# FILE: portrait_backend/multimodal/watermark.py
"""
Server-side watermark compositing with Pillow

The mark is baked into the pixel data before a preview leaves the server;
a client-side overlay could be stripped before display.
Version: 1.1.0 - anchored text rendering, option validation
"""
import base64
import io
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont, UnidentifiedImageError

from portrait_backend.config import get_settings
from portrait_backend.services.response_processor import decode_base64_image

logger = logging.getLogger(__name__)

# Approximate glyph metrics used to size the backing rectangle
GLYPH_WIDTH_FACTOR = 0.6
LINE_HEIGHT_FACTOR = 1.2
BACKING_PAD_X = 10
BACKING_PAD_Y = 5
BACKING_RADIUS = 5
MAX_TEXT_LENGTH = 100
MIN_FONT_SIZE = 8
MAX_FONT_SIZE = 72


class WatermarkPosition(str, Enum):
    BOTTOM_RIGHT = "bottom-right"
    BOTTOM_CENTER = "bottom-center"
    CENTER = "center"
    TOP_RIGHT = "top-right"


@dataclass(frozen=True)
class WatermarkSpec:
    text: str
    opacity: float = 0.7
    font_size: int = 24
    color: str = "#000000CC"
    background_color: Optional[str] = "#FFFFFFE6"
    position: str = WatermarkPosition.BOTTOM_CENTER.value
    padding: int = 20


@dataclass
class WatermarkResult:
    success: bool
    image_data: Optional[str] = None
    error: Optional[str] = None
    mime_type: str = "image/png"


def validate_watermark_spec(spec: WatermarkSpec) -> Dict[str, Any]:
    """Reject out-of-range values instead of clamping them"""
    errors: List[str] = []

    if not spec.text or not spec.text.strip():
        errors.append("Watermark text is required")
    elif len(spec.text) > MAX_TEXT_LENGTH:
        errors.append(f"Watermark text too long (max {MAX_TEXT_LENGTH} characters)")

    if not 0.0 <= spec.opacity <= 1.0:
        errors.append("Opacity must be between 0 and 1")

    if not MIN_FONT_SIZE <= spec.font_size <= MAX_FONT_SIZE:
        errors.append(f"Font size must be between {MIN_FONT_SIZE} and {MAX_FONT_SIZE}")

    if spec.padding < 0:
        errors.append("Padding must be non-negative")

    if spec.position not in WatermarkPosition._value2member_map_:
        errors.append(f"Invalid position: {spec.position}")

    for label, value in (("color", spec.color), ("background color", spec.background_color)):
        if value is None:
            continue
        try:
            ImageColor.getrgb(value)
        except ValueError:
            errors.append(f"Invalid {label}: {value}")

    return {"is_valid": len(errors) == 0, "errors": errors}


def calculate_position(
    width: int,
    height: int,
    position: str,
    font_size: int,
    padding: int
) -> Tuple[float, float]:
    """
    Anchor point for the text, vertically centred.

    For the right-hand positions x is the right edge of the text; otherwise
    x is the horizontal centre.
    """
    half_line = font_size * LINE_HEIGHT_FACTOR / 2
    anchor = WatermarkPosition(position)

    if anchor == WatermarkPosition.BOTTOM_CENTER:
        return width / 2, height - padding - half_line
    if anchor == WatermarkPosition.BOTTOM_RIGHT:
        return width - padding, height - padding - half_line
    if anchor == WatermarkPosition.TOP_RIGHT:
        return width - padding, padding + half_line
    return width / 2, height / 2


def _rgba(color: str, opacity: float) -> Tuple[int, int, int, int]:
    rgb = ImageColor.getrgb(color)
    alpha = rgb[3] if len(rgb) == 4 else 255
    return rgb[0], rgb[1], rgb[2], int(round(alpha * opacity))


def _render_overlay(size: Tuple[int, int], spec: WatermarkSpec) -> Image.Image:
    width, height = size
    overlay = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = ImageFont.load_default(size=spec.font_size)

    x, y = calculate_position(width, height, spec.position, spec.font_size, spec.padding)
    right_aligned = spec.position in (WatermarkPosition.BOTTOM_RIGHT.value, WatermarkPosition.TOP_RIGHT.value)

    if spec.background_color:
        text_width = len(spec.text) * spec.font_size * GLYPH_WIDTH_FACTOR
        text_height = spec.font_size * LINE_HEIGHT_FACTOR
        if right_aligned:
            left, right = x - text_width - BACKING_PAD_X, x + BACKING_PAD_X
        else:
            left, right = x - text_width / 2 - BACKING_PAD_X, x + text_width / 2 + BACKING_PAD_X
        top = y - text_height / 2 - BACKING_PAD_Y
        bottom = y + text_height / 2 + BACKING_PAD_Y
        draw.rounded_rectangle(
            [left, top, right, bottom],
            radius=BACKING_RADIUS,
            fill=_rgba(spec.background_color, spec.opacity),
        )

    draw.text(
        (x, y),
        spec.text,
        font=font,
        fill=_rgba(spec.color, spec.opacity),
        anchor="rm" if right_aligned else "mm",
    )
    return overlay


def add_watermark(image_data: str, spec: Optional[WatermarkSpec] = None) -> WatermarkResult:
    """
    Composite a text watermark onto a base64 (or data URL) image.

    Output is always PNG, same pixel dimensions as the input. Applying it
    twice stacks the mark.
    """
    spec = spec or default_spec()

    validation = validate_watermark_spec(spec)
    if not validation["is_valid"]:
        return WatermarkResult(success=False, error=f"Invalid watermark options: {', '.join(validation['errors'])}")

    raw = decode_base64_image(image_data)
    if raw is None:
        return WatermarkResult(success=False, error="Invalid base64 image data")

    try:
        with Image.open(io.BytesIO(raw)) as source:
            base = source.convert("RGBA")
        overlay = _render_overlay(base.size, spec)
        composited = Image.alpha_composite(base, overlay)

        out = io.BytesIO()
        composited.save(out, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.error(f"Watermarking failed: {e}")
        return WatermarkResult(success=False, error=f"Watermarking failed: {e}")

    return WatermarkResult(
        success=True,
        image_data=base64.b64encode(out.getvalue()).decode("ascii"),
    )


def default_spec() -> WatermarkSpec:
    return WatermarkSpec(text=f"PREVIEW - {get_settings().watermark_brand}")


def preview_spec() -> WatermarkSpec:
    return replace(
        default_spec(),
        opacity=0.8,
        font_size=20,
        position=WatermarkPosition.BOTTOM_CENTER.value,
        background_color="#FFFFFFE6",
        color="#000000CC",
        padding=20,
    )


def subtle_spec() -> WatermarkSpec:
    return WatermarkSpec(
        text=get_settings().watermark_brand,
        opacity=0.5,
        font_size=16,
        color="#00000099",
        background_color=None,
        position=WatermarkPosition.BOTTOM_RIGHT.value,
        padding=20,
    )


def add_preview_watermark(image_data: str) -> WatermarkResult:
    """Fixed preview profile; every preview-class output goes through this"""
    return add_watermark(image_data, preview_spec())


def add_subtle_watermark(image_data: str) -> WatermarkResult:
    """Small attribution mark for full-resolution deliverables"""
    return add_watermark(image_data, subtle_spec())
