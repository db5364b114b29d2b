"""High level API that runs both inference pipelines on a submitted image."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .config import DetectorConfig
from .errors import ModelLoadError, PreprocessingError
from .filtering import CONFIDENCE_THRESHOLD, face_result_from_prediction, filter_observations
from .image_utils import CLASSIFIER_INPUT_SIZE, ImageInput, load_image, to_pixel_buffer
from .models import ImageClassifierModel, ObjectDetectionModel
from .state import (
    DetectorState,
    FaceDetectionFailed,
    FaceDetectionReady,
    FaceDetectionSkipped,
    HelmetDetectionFailed,
    HelmetDetectionsReady,
    ModelLoadFailed,
    Pipeline,
    StateStore,
    SubmissionStarted,
)
from .types import DetectionResult

logger = logging.getLogger(__name__)

PREPROCESSING_ERROR_MESSAGE = "Failed to prepare image for face detection"


@dataclass(frozen=True)
class DetectionReport:
    """What a single ``detect_objects`` call produced, independent of the shared state."""

    submission_id: int
    helmet_detections: Tuple[DetectionResult, ...] = ()
    face_detections: Tuple[DetectionResult, ...] = ()
    helmet_error: Optional[str] = None
    face_error: Optional[str] = None

    @property
    def errors(self) -> List[str]:
        return [message for message in (self.helmet_error, self.face_error) if message]


class HelmetDetector:
    """Runs helmet detection and face classification and publishes the results.

    Construct one instance at application start and pass it to whoever submits
    images. A pipeline whose model is ``None`` (for example because it failed to
    load) is skipped for the lifetime of the detector.
    """

    def __init__(
        self,
        helmet_model: Optional[ObjectDetectionModel],
        target_classifier: Optional[ImageClassifierModel],
        store: Optional[StateStore] = None,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        classifier_input_size: int = CLASSIFIER_INPUT_SIZE,
        load_errors: Optional[Dict[Pipeline, str]] = None,
    ) -> None:
        self.helmet_model = helmet_model
        self.target_classifier = target_classifier
        self.store = store or StateStore()
        self.confidence_threshold = confidence_threshold
        self.classifier_input_size = classifier_input_size
        self._submission_ids = itertools.count(self.store.state.submission_id + 1)
        self._id_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

        for pipeline, message in (load_errors or {}).items():
            self.store.post(ModelLoadFailed(pipeline=pipeline, message=message))

    @classmethod
    def from_config(cls, config: DetectorConfig, store: Optional[StateStore] = None) -> "HelmetDetector":
        """Load both models named by ``config``; a model that fails to load disables its pipeline."""

        from .models.yolo import load_helmet_model, load_target_classifier

        load_errors: Dict[Pipeline, str] = {}
        helmet_model = None
        target_classifier = None
        try:
            helmet_model = load_helmet_model(config.helmet_model_path, device=config.device)
        except ModelLoadError as exc:
            logger.error("Helmet model unavailable: %s", exc)
            load_errors[Pipeline.HELMET] = f"Error loading models: {exc}"
        try:
            target_classifier = load_target_classifier(config.target_model_path, device=config.device)
        except ModelLoadError as exc:
            logger.error("Target classifier unavailable: %s", exc)
            load_errors[Pipeline.FACE] = f"Error loading models: {exc}"

        return cls(
            helmet_model,
            target_classifier,
            store=store,
            confidence_threshold=config.confidence_threshold,
            classifier_input_size=config.classifier_input_size,
            load_errors=load_errors,
        )

    @property
    def state(self) -> DetectorState:
        return self.store.state

    @property
    def helmet_model_loaded(self) -> bool:
        return self.helmet_model is not None

    @property
    def classifier_loaded(self) -> bool:
        return self.target_classifier is not None

    def detect_objects(self, image_input: ImageInput) -> DetectionReport:
        """Run helmet detection, then face classification, on one image.

        Arrays are handed to the models as they are; paths and PIL images are
        decoded first and raise ``FileNotFoundError``/``ValueError`` if unreadable.
        """

        image = image_input if isinstance(image_input, np.ndarray) else load_image(image_input)
        with self._id_lock:
            submission_id = next(self._submission_ids)
        self.store.post(SubmissionStarted(submission_id))
        logger.debug("Submission %d: image shape %s", submission_id, getattr(image, "shape", None))

        helmets, helmet_error = self._run_helmet_pipeline(submission_id, image)
        faces, face_error = self._run_face_pipeline(submission_id, image)
        return DetectionReport(
            submission_id=submission_id,
            helmet_detections=helmets,
            face_detections=faces,
            helmet_error=helmet_error,
            face_error=face_error,
        )

    def submit(self, image_input: ImageInput) -> "Future[DetectionReport]":
        """Queue ``detect_objects`` on the inference worker. Earlier work is never cancelled."""

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        return self._executor.submit(self.detect_objects, image_input)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _run_helmet_pipeline(
        self, submission_id: int, image: np.ndarray
    ) -> Tuple[Tuple[DetectionResult, ...], Optional[str]]:
        if self.helmet_model is None:
            return (), None
        try:
            observations = self.helmet_model.detect(image)
        except Exception as exc:
            message = f"Helmet detection failed: {exc}"
            logger.warning("Submission %d: %s", submission_id, message)
            self.store.post(HelmetDetectionFailed(submission_id, message))
            return (), message

        detections = tuple(filter_observations(observations, self.confidence_threshold))
        logger.info(
            "Submission %d: %d helmet detection(s) from %d observation(s)",
            submission_id,
            len(detections),
            len(observations),
        )
        self.store.post(HelmetDetectionsReady(submission_id, detections))
        return detections, None

    def _run_face_pipeline(
        self, submission_id: int, image: np.ndarray
    ) -> Tuple[Tuple[DetectionResult, ...], Optional[str]]:
        try:
            pixel_buffer = to_pixel_buffer(image, self.classifier_input_size)
        except PreprocessingError as exc:
            logger.warning("Submission %d: %s (%s)", submission_id, PREPROCESSING_ERROR_MESSAGE, exc)
            self.store.post(FaceDetectionFailed(submission_id, PREPROCESSING_ERROR_MESSAGE))
            return (), PREPROCESSING_ERROR_MESSAGE

        if self.target_classifier is None:
            self.store.post(FaceDetectionSkipped(submission_id))
            return (), None

        try:
            prediction = self.target_classifier.predict(pixel_buffer)
        except Exception as exc:
            message = f"Face detection failed: {exc}"
            logger.warning("Submission %d: %s", submission_id, message)
            self.store.post(FaceDetectionFailed(submission_id, message))
            return (), message

        result = face_result_from_prediction(prediction)
        if result is None:
            logger.warning(
                "Submission %d: no probability reported for predicted label %r",
                submission_id,
                prediction.target,
            )
            self.store.post(FaceDetectionSkipped(submission_id))
            return (), None

        self.store.post(FaceDetectionReady(submission_id, result))
        return (result,), None


def summarize(state: DetectorState) -> List[str]:
    """Summary lines shown under the image."""

    lines = []
    if state.face_detections:
        lines.append(f"Face Detections: {len(state.face_detections)}")
    if state.helmet_detections:
        lines.append(f"Helmet Detections: {len(state.helmet_detections)}")
    if not state.face_detections and not state.helmet_detections:
        lines.append("No detections found")
    return lines
