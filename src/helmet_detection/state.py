"""Detector state and the single-writer store that publishes it."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from .types import DetectionResult

logger = logging.getLogger(__name__)


class Pipeline(str, Enum):
    """The two independent inference paths run for every image."""

    HELMET = "helmet"
    FACE = "face"


@dataclass(frozen=True)
class DetectorState:
    """Snapshot consumed by a renderer. Replaced wholesale on every update."""

    helmet_detections: Tuple[DetectionResult, ...] = ()
    face_detections: Tuple[DetectionResult, ...] = ()
    helmet_error: Optional[str] = None
    face_error: Optional[str] = None
    is_processing: bool = False
    submission_id: int = 0

    @property
    def error_message(self) -> Optional[str]:
        errors = [message for message in (self.helmet_error, self.face_error) if message]
        if not errors:
            return None
        return "\n".join(errors)


@dataclass(frozen=True)
class SubmissionStarted:
    submission_id: int


@dataclass(frozen=True)
class HelmetDetectionsReady:
    submission_id: int
    detections: Tuple[DetectionResult, ...]


@dataclass(frozen=True)
class HelmetDetectionFailed:
    submission_id: int
    message: str


@dataclass(frozen=True)
class FaceDetectionReady:
    submission_id: int
    detection: DetectionResult


@dataclass(frozen=True)
class FaceDetectionFailed:
    submission_id: int
    message: str


@dataclass(frozen=True)
class FaceDetectionSkipped:
    """The face pipeline finished without a result and without an error."""

    submission_id: int


@dataclass(frozen=True)
class ModelLoadFailed:
    pipeline: Pipeline
    message: str
    submission_id: int = 0


StateUpdate = Union[
    SubmissionStarted,
    HelmetDetectionsReady,
    HelmetDetectionFailed,
    FaceDetectionReady,
    FaceDetectionFailed,
    FaceDetectionSkipped,
    ModelLoadFailed,
]

StateObserver = Callable[[DetectorState], None]

_FACE_COMPLETIONS = (FaceDetectionReady, FaceDetectionFailed, FaceDetectionSkipped)


def apply_update(state: DetectorState, update: StateUpdate) -> DetectorState:
    """Return the state that results from applying ``update`` to ``state``.

    Updates tagged with an older submission than the current one are stale and
    leave the state untouched.
    """

    if isinstance(update, ModelLoadFailed):
        if update.pipeline is Pipeline.HELMET:
            return replace(state, helmet_error=update.message)
        return replace(state, face_error=update.message)

    if update.submission_id < state.submission_id:
        logger.debug("Discarding stale update %r", update)
        return state

    if isinstance(update, SubmissionStarted):
        return replace(state, submission_id=update.submission_id, is_processing=True)
    if isinstance(update, HelmetDetectionsReady):
        return replace(state, helmet_detections=tuple(update.detections), helmet_error=None)
    if isinstance(update, HelmetDetectionFailed):
        return replace(state, helmet_error=update.message)

    if not isinstance(update, _FACE_COMPLETIONS):
        raise TypeError(f"Unsupported state update: {update!r}")

    state = replace(state, is_processing=False)
    if isinstance(update, FaceDetectionReady):
        return replace(state, face_detections=(update.detection,), face_error=None)
    if isinstance(update, FaceDetectionFailed):
        return replace(state, face_error=update.message)
    return state


class StateStore:
    """Owns the current :class:`DetectorState`; the only place it is written.

    Pipelines ``post`` immutable updates onto a queue. Updates are applied one at
    a time either by the dispatcher thread (``start``) or synchronously by
    ``drain`` when no dispatcher is running.
    """

    def __init__(self, initial: Optional[DetectorState] = None) -> None:
        self._state = initial or DetectorState()
        self._updates: "queue.Queue[Optional[StateUpdate]]" = queue.Queue()
        self._observers: List[StateObserver] = []
        self._observers_lock = threading.Lock()
        self._apply_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._idle = threading.Condition()

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def post(self, update: StateUpdate) -> None:
        self._updates.put(update)

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        """Register ``observer`` for every new snapshot; returns an unsubscribe callable."""

        with self._observers_lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._observers_lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def start(self) -> None:
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="detector-state", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Apply everything already posted, then stop the dispatcher thread."""

        if self._thread is None:
            return
        self._updates.put(None)
        self._thread.join(timeout)
        self._thread = None

    def drain(self) -> DetectorState:
        """Apply all queued updates on the calling thread.

        Only valid while the dispatcher thread is not running.
        """

        if self.running:
            raise RuntimeError("drain() cannot be used while the dispatcher thread is running")
        while True:
            try:
                update = self._updates.get_nowait()
            except queue.Empty:
                return self._state
            try:
                if update is not None:
                    self._apply(update)
            finally:
                self._updates.task_done()
                self._notify_idle()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every posted update has been applied.

        Without a running dispatcher the queue is drained on the calling thread.
        Returns ``False`` if ``timeout`` elapsed first.
        """

        if not self.running:
            self.drain()
            return True
        with self._idle:
            return self._idle.wait_for(lambda: self._updates.unfinished_tasks == 0, timeout)

    def __enter__(self) -> "StateStore":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _run(self) -> None:
        while True:
            update = self._updates.get()
            try:
                if update is None:
                    return
                self._apply(update)
            finally:
                self._updates.task_done()
                self._notify_idle()

    def _notify_idle(self) -> None:
        with self._idle:
            self._idle.notify_all()

    def _apply(self, update: StateUpdate) -> None:
        with self._apply_lock:
            new_state = apply_update(self._state, update)
            if new_state is self._state:
                return
            self._state = new_state
            with self._observers_lock:
                observers = list(self._observers)
        for observer in observers:
            try:
                observer(new_state)
            except Exception:
                logger.exception("State observer %r failed", observer)
