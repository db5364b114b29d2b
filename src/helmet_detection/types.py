"""Common types used throughout the detection pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Mapping, Tuple


@dataclass(frozen=True)
class NormalizedBox:
    """Rectangle in fractions of the image size, origin at the bottom-left."""

    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class PixelRect:
    """Rectangle in display pixels, origin at the top-left."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class DetectionResult:
    """A single labeled detection ready to be displayed."""

    label: str
    confidence: float
    bounding_box: NormalizedBox
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class Classification:
    """One candidate label reported for an object observation."""

    identifier: str
    confidence: float


@dataclass(frozen=True)
class ObjectObservation:
    """Raw object-detection output; ``labels`` are ordered best first."""

    bounding_box: NormalizedBox
    labels: Tuple[Classification, ...] = ()


@dataclass(frozen=True)
class ClassifierPrediction:
    """Raw classifier output: the predicted label and every label probability."""

    target: str
    probabilities: Mapping[str, float]
