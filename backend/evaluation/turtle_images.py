"""Rasterizing turtle drawings and comparing them against reference images.

Pixels are classified as "ink" when they differ perceptually from the
image's background, using the same YIQ colour delta as pixelmatch. Two
drawings are similar when each one's ink lies close to the other's ink,
so a thin line drawn one pixel off still counts.
"""

import base64
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import httpx
import numpy as np
from PIL import Image, ImageColor, ImageDraw

from .errors import TurtleValidationError
from .models import Dot, FillPolygon, PathSegment

logger = logging.getLogger(__name__)

# Largest possible YIQ delta between two colours (pixelmatch's maxDelta).
MAX_YIQ_DELTA = 35215.0

_MATCHED = (190, 190, 190)
_STUDENT_ONLY = (230, 40, 40)
_REFERENCE_ONLY = (40, 90, 230)


@dataclass
class ImageComparison:
    similarity: float  # 0.0 to 1.0
    passed: bool
    num_diff_pixels: int
    total_pixels: int
    diff_image_data_url: str | None = None


def _rgb(color: str, default: tuple[int, int, int] = (0, 0, 0)) -> tuple[int, int, int]:
    try:
        return ImageColor.getrgb(color)[:3]
    except (ValueError, AttributeError):
        return default


def render_segments(
    segments: Sequence[PathSegment],
    width: int,
    height: int,
    background: str = "white",
    fills: Sequence[FillPolygon] = (),
    dots: Sequence[Dot] = (),
) -> Image.Image:
    """Draw a recorded drawing onto a canvas with the turtle origin at its centre.

    Fills go underneath the lines and dots on top of them.
    """
    image = Image.new("RGB", (width, height), _rgb(background, (255, 255, 255)))
    draw = ImageDraw.Draw(image)
    cx, cy = width / 2.0, height / 2.0

    def to_pixel(point: tuple[float, float]) -> tuple[float, float]:
        return (cx + point[0], cy - point[1])

    for fill in fills:
        draw.polygon([to_pixel(p) for p in fill.points], fill=_rgb(fill.color))
    for segment in segments:
        draw.line(
            [to_pixel(segment.start), to_pixel(segment.end)],
            fill=_rgb(segment.color),
            width=max(1, round(segment.width)),
        )
    for dot in dots:
        x, y = to_pixel(dot.center)
        r = dot.size / 2.0
        draw.ellipse([x - r, y - r, x + r, y + r], fill=_rgb(dot.color))
    return image


def image_to_data_url(image: Image.Image) -> str:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


def _open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except OSError as e:
        raise TurtleValidationError(f"Reference image could not be decoded: {e}") from e

    # Transparent areas read as white, like the canvas they were exported from.
    rgba = image.convert("RGBA")
    flattened = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
    flattened.alpha_composite(rgba)
    return flattened.convert("RGB")


async def load_reference_image(reference: str, assets_dir: Path) -> Image.Image:
    """Load a reference image from a data URL, an http(s) URL, or a path under ``assets_dir``."""
    if reference.startswith("data:image/"):
        try:
            _, encoded = reference.split(",", 1)
            return _open_image(base64.b64decode(encoded))
        except ValueError as e:
            raise TurtleValidationError(f"Malformed data URL for reference image: {e}") from e

    if reference.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=30.0) as client:
            try:
                response = await client.get(reference, follow_redirects=True)
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TurtleValidationError(f"Failed to fetch reference image {reference}: {e}") from e
        return _open_image(response.content)

    root = Path(assets_dir).resolve()
    path = (root / reference.lstrip("/")).resolve()
    if root not in path.parents:
        raise TurtleValidationError(f"Reference image {reference!r} is outside the assets directory")
    if not path.is_file():
        raise TurtleValidationError(f"Reference image not found: {reference}")
    return _open_image(path.read_bytes())


def _yiq(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = pixels[..., 0], pixels[..., 1], pixels[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def _background_of(pixels: np.ndarray) -> np.ndarray:
    colors, counts = np.unique(pixels.reshape(-1, 3), axis=0, return_counts=True)
    return colors[counts.argmax()]


def ink_mask(image: Image.Image, pixel_threshold: float = 0.1) -> np.ndarray:
    """Pixels whose colour differs noticeably from the dominant (background) colour."""
    pixels = np.asarray(image.convert("RGB"), dtype=np.float64)
    background = _background_of(pixels)
    y1, i1, q1 = _yiq(pixels)
    y2, i2, q2 = _yiq(background.reshape(1, 1, 3))
    delta = 0.5053 * (y1 - y2) ** 2 + 0.299 * (i1 - i2) ** 2 + 0.1957 * (q1 - q2) ** 2
    return delta > MAX_YIQ_DELTA * pixel_threshold * pixel_threshold


def dilate(mask: np.ndarray, radius: int) -> np.ndarray:
    if radius <= 0:
        return mask.copy()
    height, width = mask.shape
    padded = np.pad(mask, radius)
    grown = np.zeros_like(mask)
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            if dx * dx + dy * dy > radius * radius:
                continue
            grown |= padded[radius + dy:radius + dy + height, radius + dx:radius + dx + width]
    return grown


def compare_images(
    student: Image.Image,
    reference: Image.Image,
    threshold: float = 0.95,
    pixel_threshold: float = 0.1,
    match_radius: int = 2,
    include_diff: bool = True,
) -> ImageComparison:
    if student.size != reference.size:
        raise TurtleValidationError(
            f"Image sizes differ: student {student.size}, reference {reference.size}"
        )

    student_ink = ink_mask(student, pixel_threshold)
    reference_ink = ink_mask(reference, pixel_threshold)
    student_matched = student_ink & dilate(reference_ink, match_radius)
    reference_matched = reference_ink & dilate(student_ink, match_radius)

    total_ink = int(student_ink.sum() + reference_ink.sum())
    if total_ink == 0:
        similarity = 1.0
    else:
        similarity = float(student_matched.sum() + reference_matched.sum()) / total_ink

    student_only = student_ink & ~student_matched
    reference_only = reference_ink & ~reference_matched
    num_diff = int(student_only.sum() + reference_only.sum())
    logger.debug("Image similarity %.4f (%d unmatched ink pixels)", similarity, num_diff)

    diff_url = None
    if include_diff:
        canvas = np.full(student_ink.shape + (3,), 255, dtype=np.uint8)
        canvas[student_matched | reference_matched] = _MATCHED
        canvas[reference_only] = _REFERENCE_ONLY
        canvas[student_only] = _STUDENT_ONLY
        diff_url = image_to_data_url(Image.fromarray(canvas, "RGB"))

    width, height = student.size
    return ImageComparison(
        similarity=similarity,
        passed=similarity >= threshold,
        num_diff_pixels=num_diff,
        total_pixels=width * height,
        diff_image_data_url=diff_url,
    )
