"""Integration style tests for the detector orchestration."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from helmet_detection import DetectorConfig, HelmetDetector, StateStore, summarize, to_pixel_rect
from helmet_detection.detector import PREPROCESSING_ERROR_MESSAGE
from helmet_detection.state import DetectorState, Pipeline
from helmet_detection.types import DetectionResult, NormalizedBox

from . import image_factory as factory
from .fakes import FakeClassifier, FakeHelmetModel, observation


def _run(detector: HelmetDetector, image=None) -> DetectorState:
    detector.detect_objects(factory.create_rider_image() if image is None else image)
    return detector.store.drain()


def test_helmet_and_face_results_are_published():
    helmet_model = FakeHelmetModel([observation("helmet", 0.82, box=(0.1, 0.1, 0.3, 0.3))])
    detector = HelmetDetector(helmet_model, FakeClassifier())
    state = _run(detector)

    (helmet,) = state.helmet_detections
    assert helmet.label == "helmet"
    assert helmet.confidence == pytest.approx(0.82)
    rect = to_pixel_rect(helmet.bounding_box, 300, 300)
    assert (rect.x, rect.y, rect.width, rect.height) == pytest.approx((30, 180, 90, 90))

    (face,) = state.face_detections
    assert face.label == "no-helmet"
    assert face.confidence == pytest.approx(0.91)
    assert face.bounding_box == NormalizedBox(0.2, 0.2, 0.6, 0.6)

    assert state.error_message is None
    assert not state.is_processing


def test_models_receive_whole_image_and_square_buffer():
    helmet_model = FakeHelmetModel()
    classifier = FakeClassifier()
    image = factory.create_rider_image()
    HelmetDetector(helmet_model, classifier).detect_objects(image)

    assert helmet_model.calls[0].shape == image.shape
    assert classifier.calls[0].shape == (299, 299, 3)


def test_zero_candidates_give_empty_list_without_error():
    detector = HelmetDetector(FakeHelmetModel([]), FakeClassifier())
    state = _run(detector)
    assert state.helmet_detections == ()
    assert state.helmet_error is None


def test_low_confidence_candidates_are_dropped():
    helmet_model = FakeHelmetModel([observation("helmet", 0.5), observation("no-helmet", 0.51)])
    report = HelmetDetector(helmet_model, FakeClassifier()).detect_objects(factory.create_rider_image())
    assert [d.label for d in report.helmet_detections] == ["no-helmet"]


def test_missing_probability_entry_produces_nothing():
    classifier = FakeClassifier(target="no-helmet", probabilities={"helmet": 0.09})
    detector = HelmetDetector(FakeHelmetModel(), classifier)
    state = _run(detector)
    assert state.face_detections == ()
    assert state.face_error is None
    assert not state.is_processing


def test_helmet_failure_keeps_previous_detections():
    helmet_model = FakeHelmetModel([observation("helmet", 0.9)])
    detector = HelmetDetector(helmet_model, FakeClassifier())
    previous = _run(detector).helmet_detections

    helmet_model.error = "model crashed"
    state = _run(detector)
    assert state.helmet_detections == previous
    assert state.helmet_error == "Helmet detection failed: model crashed"
    assert len(state.face_detections) == 1


def test_face_failure_keeps_previous_face():
    classifier = FakeClassifier()
    detector = HelmetDetector(FakeHelmetModel(), classifier)
    previous = _run(detector).face_detections

    classifier.error = "bad tensor"
    state = _run(detector)
    assert state.face_detections == previous
    assert state.face_error == "Face detection failed: bad tensor"


def test_preprocessing_failure_skips_classification():
    classifier = FakeClassifier()
    detector = HelmetDetector(FakeHelmetModel(), classifier)
    report = detector.detect_objects(factory.create_empty_image())
    state = detector.store.drain()

    assert classifier.calls == []
    assert report.face_error == PREPROCESSING_ERROR_MESSAGE
    assert state.face_error == PREPROCESSING_ERROR_MESSAGE
    assert not state.is_processing


def test_both_pipeline_errors_are_kept():
    detector = HelmetDetector(FakeHelmetModel(error="helmet down"), FakeClassifier(error="face down"))
    report = detector.detect_objects(factory.create_rider_image())
    state = detector.store.drain()
    assert report.errors == ["Helmet detection failed: helmet down", "Face detection failed: face down"]
    assert state.helmet_error == "Helmet detection failed: helmet down"
    assert state.face_error == "Face detection failed: face down"


def test_successful_run_clears_previous_errors():
    helmet_model = FakeHelmetModel(error="transient")
    detector = HelmetDetector(helmet_model, FakeClassifier())
    assert _run(detector).helmet_error is not None

    helmet_model.error = None
    assert _run(detector).helmet_error is None


def test_unloaded_models_are_noops():
    detector = HelmetDetector(
        None,
        None,
        load_errors={Pipeline.HELMET: "Error loading models: missing helmet model"},
    )
    for _ in range(3):
        report = detector.detect_objects(factory.create_rider_image())
        assert report.helmet_detections == ()
        assert report.face_detections == ()
    state = detector.store.drain()
    assert state.helmet_detections == ()
    assert state.face_detections == ()
    assert state.helmet_error == "Error loading models: missing helmet model"
    assert not state.is_processing
    assert not detector.helmet_model_loaded
    assert not detector.classifier_loaded


def test_from_config_with_missing_model_files(tmp_path):
    config = DetectorConfig(
        helmet_model_path=str(tmp_path / "helmet.pt"),
        target_model_path=str(tmp_path / "face.pt"),
    )
    detector = HelmetDetector.from_config(config)
    state = _run(detector)

    assert not detector.helmet_model_loaded
    assert not detector.classifier_loaded
    assert state.helmet_error.startswith("Error loading models:")
    assert state.face_error.startswith("Error loading models:")
    assert state.helmet_detections == ()
    assert state.face_detections == ()


def test_submission_ids_increase():
    detector = HelmetDetector(FakeHelmetModel(), FakeClassifier())
    first = detector.detect_objects(factory.create_rider_image())
    second = detector.detect_objects(factory.create_rider_image())
    assert second.submission_id == first.submission_id + 1
    assert detector.store.drain().submission_id == second.submission_id


def test_detect_objects_accepts_a_path(tmp_path):
    path = tmp_path / "rider.png"
    cv2.imwrite(str(path), factory.create_rider_image())
    detector = HelmetDetector(FakeHelmetModel([observation("helmet", 0.8)]), FakeClassifier())
    report = detector.detect_objects(str(path))
    assert len(report.helmet_detections) == 1


def test_submit_runs_on_the_inference_worker():
    with StateStore() as store:
        detector = HelmetDetector(FakeHelmetModel([observation("helmet", 0.8)]), FakeClassifier(), store=store)
        try:
            futures = [detector.submit(factory.create_rider_image()) for _ in range(3)]
            reports = [future.result(timeout=10) for future in futures]
        finally:
            detector.shutdown()
        assert store.wait_idle(timeout=5)

    assert [r.submission_id for r in reports] == [1, 2, 3]
    assert store.state.submission_id == 3
    assert len(store.state.helmet_detections) == 1
    assert not store.state.is_processing


@pytest.mark.parametrize(
    ("helmets", "faces", "expected"),
    [
        (1, 1, ["Face Detections: 1", "Helmet Detections: 1"]),
        (2, 0, ["Helmet Detections: 2"]),
        (0, 1, ["Face Detections: 1"]),
        (0, 0, ["No detections found"]),
    ],
)
def test_summarize(helmets, faces, expected):
    box = NormalizedBox(0.2, 0.2, 0.6, 0.6)
    state = DetectorState(
        helmet_detections=tuple(DetectionResult("helmet", 0.9, box) for _ in range(helmets)),
        face_detections=tuple(DetectionResult("no-helmet", 0.9, box) for _ in range(faces)),
    )
    assert summarize(state) == expected


class _OverlappingHelmetModel(FakeHelmetModel):
    """Starts and finishes a newer submission while the first one is still inferring."""

    def __init__(self) -> None:
        super().__init__()
        self.detector = None
        self.newer_report = None

    def detect(self, image):
        self.calls.append(image)
        if len(self.calls) == 1:
            self.newer_report = self.detector.detect_objects(image)
            return [observation("helmet", 0.9)]
        return [observation("no-helmet", 0.8), observation("helmet", 0.7)]


def test_results_of_an_older_submission_are_discarded():
    helmet_model = _OverlappingHelmetModel()
    detector = HelmetDetector(helmet_model, FakeClassifier())
    helmet_model.detector = detector

    older = detector.detect_objects(factory.create_rider_image())
    state = detector.store.drain()

    newer = helmet_model.newer_report
    assert older.submission_id == 1
    assert newer.submission_id == 2
    assert state.submission_id == 2
    assert state.helmet_detections == newer.helmet_detections
    assert state.face_detections == newer.face_detections
    assert state.face_detections != older.face_detections
    assert not state.is_processing


def test_unscalable_raster_records_preprocessing_error():
    classifier = FakeClassifier()
    detector = HelmetDetector(FakeHelmetModel(), classifier)
    state = _run(detector, np.full((50, 50, 3), 7.0, dtype=np.float32))
    assert classifier.calls == []
    assert state.face_error == PREPROCESSING_ERROR_MESSAGE
