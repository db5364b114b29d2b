"""Runtime configuration read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import dotenv_values, find_dotenv

from .filtering import CONFIDENCE_THRESHOLD
from .image_utils import CLASSIFIER_INPUT_SIZE

DEFAULT_HELMET_MODEL_PATH = os.path.join("models", "helmet.pt")
DEFAULT_TARGET_MODEL_PATH = os.path.join("models", "face_detection-cls.pt")


@dataclass(frozen=True)
class DetectorConfig:
    helmet_model_path: str = DEFAULT_HELMET_MODEL_PATH
    target_model_path: str = DEFAULT_TARGET_MODEL_PATH
    device: str = "cpu"
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    classifier_input_size: int = CLASSIFIER_INPUT_SIZE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, load_env_file: bool = True) -> "DetectorConfig":
        """Build a config from ``HELMET_MODEL_PATH``, ``TARGET_MODEL_PATH`` and friends.

        Values from a ``.env`` file (the nearest one to the working directory
        unless ``env_file`` is given) apply only where the process environment
        does not set the variable.
        """

        env: dict = {}
        if load_env_file:
            path = env_file or find_dotenv(usecwd=True)
            if path:
                env.update({k: v for k, v in dotenv_values(path).items() if v is not None})
        env.update(os.environ)

        return cls(
            helmet_model_path=env.get("HELMET_MODEL_PATH", DEFAULT_HELMET_MODEL_PATH),
            target_model_path=env.get("TARGET_MODEL_PATH", DEFAULT_TARGET_MODEL_PATH),
            device=env.get("INFERENCE_DEVICE", "cpu"),
            confidence_threshold=_env_number(env, "CONFIDENCE_THRESHOLD", float, CONFIDENCE_THRESHOLD),
            classifier_input_size=_env_number(env, "CLASSIFIER_INPUT_SIZE", int, CLASSIFIER_INPUT_SIZE),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def _env_number(env: Mapping[str, str], name, kind, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return kind(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc
