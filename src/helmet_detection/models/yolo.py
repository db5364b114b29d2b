"""YOLO-backed implementations of the detection and classification models."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Union

import numpy as np
from PIL import Image
from ultralytics import YOLO

from ..errors import InferenceError, ModelLoadError
from ..geometry import from_pixel_box
from ..types import Classification, ClassifierPrediction, ObjectObservation
from .base import ImageClassifierModel, ObjectDetectionModel

logger = logging.getLogger(__name__)

ModelPath = Union[str, Path]


def _load_yolo(model_path: ModelPath) -> YOLO:
    path = Path(model_path)
    if not path.exists():
        raise ModelLoadError(f"Model file not found: {path}")
    try:
        model = YOLO(str(path))
    except Exception as exc:
        raise ModelLoadError(f"Unable to load model {path}: {exc}") from exc
    logger.info("Loaded model %s", path)
    return model


class YOLOHelmetModel(ObjectDetectionModel):
    """Helmet detector running a YOLO detection model."""

    def __init__(self, model: YOLO, device: str = "cpu") -> None:
        self.model = model
        self.device = device

    def detect(self, image: np.ndarray) -> List[ObjectObservation]:
        """
        Run the detector on the full image.

        Args:
            image: BGR image as numpy array

        Returns:
            One observation per predicted box, normalized with a bottom-left origin
        """
        try:
            results = self.model(image, device=self.device, verbose=False)
        except Exception as exc:
            raise InferenceError(str(exc)) from exc

        if not results:
            return []

        result = results[0]
        if result.boxes is None or len(result.boxes) == 0:
            return []

        image_height, image_width = result.orig_shape[:2]
        observations = []
        for box in result.boxes:
            cls_id = int(box.cls[0])
            confidence = float(box.conf[0])
            x1, y1, x2, y2 = (float(v) for v in box.xyxy[0].cpu().numpy())
            observations.append(
                ObjectObservation(
                    bounding_box=from_pixel_box(x1, y1, x2, y2, image_width, image_height),
                    labels=(Classification(identifier=str(result.names[cls_id]), confidence=confidence),),
                )
            )
        return observations


class YOLOTargetClassifier(ImageClassifierModel):
    """Face/target classifier running a YOLO classification model."""

    def __init__(self, model: YOLO, device: str = "cpu") -> None:
        self.model = model
        self.device = device

    def predict(self, pixel_buffer: np.ndarray) -> ClassifierPrediction:
        # PIL input is treated as RGB by ultralytics, ndarray input as BGR
        try:
            results = self.model(Image.fromarray(pixel_buffer), device=self.device, verbose=False)
        except Exception as exc:
            raise InferenceError(str(exc)) from exc

        if not results or results[0].probs is None:
            raise InferenceError("Classifier returned no probabilities")

        result = results[0]
        scores = result.probs.data.cpu().numpy().tolist()
        probabilities = {str(result.names[idx]): float(score) for idx, score in enumerate(scores)}
        return ClassifierPrediction(
            target=str(result.names[int(result.probs.top1)]),
            probabilities=probabilities,
        )


def load_helmet_model(model_path: ModelPath, device: str = "cpu") -> YOLOHelmetModel:
    return YOLOHelmetModel(_load_yolo(model_path), device=device)


def load_target_classifier(model_path: ModelPath, device: str = "cpu") -> YOLOTargetClassifier:
    return YOLOTargetClassifier(_load_yolo(model_path), device=device)
