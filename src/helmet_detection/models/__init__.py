"""Model exports."""

from .base import ImageClassifierModel, ObjectDetectionModel

__all__ = [
    "ImageClassifierModel",
    "ObjectDetectionModel",
]
