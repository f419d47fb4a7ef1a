"""Error taxonomy for the prediction service.

Every error a request can end in is a :class:`ServiceError`.  The HTTP layer
turns them into ``{"error": ..., "details": ...}`` JSON bodies with the
matching status code.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP error response."""

    status_code: int = 500
    error: str = "internal error"

    def __init__(self, details: str | None = None) -> None:
        super().__init__(details or self.error)
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class MissingImage(ServiceError):
    """The request carried no ``image`` field."""

    status_code = 400
    error = "no image"


class UploadTooLarge(ServiceError):
    status_code = 413
    error = "file too large"


class ModelNotLoaded(ServiceError):
    """The model is still loading, or failed to load at startup."""

    status_code = 500
    error = "model not loaded"


class InferenceFailure(ServiceError):
    """Request-scoped failure anywhere between decoding and ranking."""

    status_code = 500
    error = "inference failed"

    def __init__(self, details: str | None = None) -> None:
        super().__init__(details or self.__class__.__name__)


class DecodeError(InferenceFailure):
    pass


class UnsupportedChannelLayout(InferenceFailure):
    pass


class InferenceError(InferenceFailure):
    pass


class InferenceTimeout(InferenceError):
    pass


class EmptyScoreVector(InferenceFailure):
    pass


class ModelLoadError(Exception):
    """Raised while loading the model at startup; never reaches a client."""
