"""Post-processing of raw model outputs into display-ready detections."""

from __future__ import annotations

from typing import Iterable, List, Optional

from .types import ClassifierPrediction, DetectionResult, NormalizedBox, ObjectObservation

CONFIDENCE_THRESHOLD = 0.5

# The classifier does not localize; this central region is only a display stand-in.
FACE_PLACEHOLDER_BOX = NormalizedBox(x=0.2, y=0.2, width=0.6, height=0.6)


def filter_observations(
    observations: Iterable[ObjectObservation],
    threshold: float = CONFIDENCE_THRESHOLD,
) -> List[DetectionResult]:
    """Keep observations whose top label scores strictly above ``threshold``.

    Input order is preserved and observations without any label are dropped.
    """

    results: List[DetectionResult] = []
    for observation in observations:
        if not observation.labels:
            continue
        top = observation.labels[0]
        if not top.confidence > threshold:
            continue
        results.append(
            DetectionResult(
                label=top.identifier,
                confidence=float(top.confidence),
                bounding_box=observation.bounding_box,
            )
        )
    return results


def face_result_from_prediction(prediction: ClassifierPrediction) -> Optional[DetectionResult]:
    """Build the face detection for a classifier prediction.

    Returns ``None`` when the predicted label has no probability entry.
    """

    probability = prediction.probabilities.get(prediction.target)
    if probability is None:
        return None
    return DetectionResult(
        label=prediction.target,
        confidence=float(probability),
        bounding_box=FACE_PLACEHOLDER_BOX,
    )
