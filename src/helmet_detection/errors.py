"""Exceptions raised at the model and preprocessing boundaries."""


class HelmetDetectionError(Exception):
    """Base class for all errors raised by this package."""


class ModelLoadError(HelmetDetectionError):
    """A model artifact could not be loaded."""


class InferenceError(HelmetDetectionError):
    """A model call failed for one submitted image."""


class PreprocessingError(HelmetDetectionError):
    """An image could not be converted into model input."""
