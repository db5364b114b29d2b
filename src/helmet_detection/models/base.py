"""Base model definitions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..types import ClassifierPrediction, ObjectObservation


class ObjectDetectionModel(ABC):
    """Black-box object detector working on the whole, unresized image."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[ObjectObservation]:
        """Return labeled, confidence-scored observations with normalized boxes."""


class ImageClassifierModel(ABC):
    """Black-box classifier working on a fixed-size RGB pixel buffer."""

    @abstractmethod
    def predict(self, pixel_buffer: np.ndarray) -> ClassifierPrediction:
        """Return the predicted label and the probability of every label."""
