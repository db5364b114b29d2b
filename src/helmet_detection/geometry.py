"""Bounding-box geometry shared by model adapters and renderers."""

from __future__ import annotations

from typing import Tuple

from .types import DetectionResult, NormalizedBox, PixelRect

CAPTION_OFFSET = 10.0


def to_pixel_rect(box: NormalizedBox, width: float, height: float) -> PixelRect:
    """Map a bottom-left-origin normalized box onto a top-left-origin surface."""

    return PixelRect(
        x=box.x * width,
        y=(1 - box.max_y) * height,
        width=box.width * width,
        height=box.height * height,
    )


def from_pixel_box(
    x1: float, y1: float, x2: float, y2: float, image_width: int, image_height: int
) -> NormalizedBox:
    """Convert a top-left-origin pixel box (xyxy) into a normalized box."""

    if image_width <= 0 or image_height <= 0:
        return NormalizedBox(0.0, 0.0, 0.0, 0.0)
    left = _clip(min(x1, x2) / image_width)
    right = _clip(max(x1, x2) / image_width)
    top = _clip(min(y1, y2) / image_height)
    bottom = _clip(max(y1, y2) / image_height)
    return NormalizedBox(
        x=left,
        y=1.0 - bottom,
        width=right - left,
        height=bottom - top,
    )


def label_anchor(rect: PixelRect) -> Tuple[float, float]:
    """Point where a caption is centred, just above the rectangle."""

    return rect.x + rect.width / 2, rect.y - CAPTION_OFFSET


def format_caption(detection: DetectionResult) -> str:
    return f"{detection.label}: {int(detection.confidence * 100)}%"


def _clip(value: float) -> float:
    return float(max(0.0, min(1.0, value)))
