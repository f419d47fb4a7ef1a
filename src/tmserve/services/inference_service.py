"""Service layer – model invocation."""

from __future__ import annotations

import asyncio
import logging

import numpy as np

from src.tmserve.errors import InferenceError, InferenceTimeout
from src.tmserve.services.model_service import Classifier

logger = logging.getLogger(__name__)


class InferenceEngine:
    """Run a classifier on a preprocessed batch in a worker thread.

    ``timeout`` bounds how long a request waits for the model; ``None``
    waits indefinitely.  A timed-out call keeps running in its thread, the
    request just stops waiting for it.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    async def predict(self, model: Classifier, batch: np.ndarray) -> np.ndarray:
        try:
            output = await asyncio.wait_for(
                asyncio.to_thread(model.predict, batch),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Inference timed out after %ss", self.timeout)
            raise InferenceTimeout(f"Inference timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise InferenceError(f"Model rejected input: {exc}") from exc

        try:
            scores = np.asarray(output, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise InferenceError(f"Model returned non-numeric output: {exc}") from exc

        # (1, N) → (N,)
        if scores.ndim > 1:
            scores = scores[0]
        return scores.reshape(-1)
