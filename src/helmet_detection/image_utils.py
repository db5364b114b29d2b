"""Utility helpers for image loading and preprocessing."""

from __future__ import annotations

from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image

from .errors import PreprocessingError

ImageInput = Union[str, Path, np.ndarray, Image.Image]

CLASSIFIER_INPUT_SIZE = 299


def load_image(image_input: ImageInput) -> np.ndarray:
    """Load an image input into an OpenCV-compatible BGR ndarray."""

    if isinstance(image_input, np.ndarray):
        image = image_input.copy()
    elif isinstance(image_input, Image.Image):
        image = cv2.cvtColor(np.array(image_input.convert("RGB")), cv2.COLOR_RGB2BGR)
    else:
        path = Path(image_input)
        if not path.exists():
            raise FileNotFoundError(f"Image path not found: {path}")
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError(f"Unable to read image from path: {path}")

    return ensure_color(image)


def ensure_color(image: np.ndarray) -> np.ndarray:
    """Ensure the ndarray is three-channel BGR."""

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image


def to_pixel_buffer(image: np.ndarray, size: int = CLASSIFIER_INPUT_SIZE) -> np.ndarray:
    """Resize a BGR image to a ``size`` x ``size`` RGB buffer for the classifier.

    The aspect ratio is not preserved: the whole image is squeezed into the square.
    """

    if not isinstance(image, np.ndarray) or image.ndim not in (2, 3) or image.size == 0:
        raise PreprocessingError("Image has no pixel data")
    if size <= 0:
        raise PreprocessingError(f"Invalid classifier input size: {size}")
    pixels = _to_uint8(image)
    try:
        color_image = ensure_color(pixels)
        resized = cv2.resize(color_image, (size, size), interpolation=cv2.INTER_AREA)
        buffer = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
    except cv2.error as exc:
        raise PreprocessingError(f"Unable to resize image: {exc}") from exc
    return np.ascontiguousarray(buffer)


def _to_uint8(image: np.ndarray) -> np.ndarray:
    """Scale 16-bit and [0, 1] float rasters to 8 bits; reject anything else."""

    if image.dtype == np.uint8:
        return image
    if image.dtype == np.uint16:
        return cv2.convertScaleAbs(image, alpha=255.0 / 65535.0)
    if np.issubdtype(image.dtype, np.floating):
        if not np.all(np.isfinite(image)) or image.min() < 0.0 or image.max() > 1.0:
            raise PreprocessingError("Float images must hold values in [0, 1]")
        return np.rint(np.clip(image * 255.0, 0, 255)).astype(np.uint8)
    raise PreprocessingError(f"Unsupported image dtype: {image.dtype}")
