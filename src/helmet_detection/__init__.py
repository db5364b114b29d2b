"""Public exports for the helmet detection package."""

from .config import DetectorConfig
from .detector import DetectionReport, HelmetDetector, summarize
from .geometry import to_pixel_rect
from .state import DetectorState, StateStore
from .types import DetectionResult, NormalizedBox, PixelRect

__all__ = [
    "DetectorConfig",
    "DetectionReport",
    "HelmetDetector",
    "summarize",
    "to_pixel_rect",
    "DetectorState",
    "StateStore",
    "DetectionResult",
    "NormalizedBox",
    "PixelRect",
]
