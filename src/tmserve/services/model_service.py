"""Service layer – model loading, label lookup and the model registry.

Supports both **Keras** exports (``.h5`` / ``.keras`` / SavedModel, full
TensorFlow) and **TFLite** exports (``tflite-runtime`` or TensorFlow's
bundled interpreter).  The registry is loaded once at startup in the
background and then shared read-only by every request.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import numpy as np

from src.tmserve import compat
from src.tmserve.errors import ModelLoadError, ModelNotLoaded

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    """Anything that maps a ``(1, H, W, 3)`` batch onto class scores."""

    backend: str

    def predict(self, batch: np.ndarray) -> np.ndarray: ...


# ──────────────────────────────────────────────
# Backends
# ──────────────────────────────────────────────
class KerasClassifier:
    backend = "keras"

    def __init__(self, model: Any) -> None:
        self._model = model

    def predict(self, batch: np.ndarray) -> np.ndarray:
        # ``Model.predict`` is not safe to call from several threads
        return np.asarray(self._model(batch, training=False))


class TFLiteClassifier:
    backend = "tflite"

    def __init__(self, interpreter: Any) -> None:
        self._interpreter = interpreter
        self._interpreter.allocate_tensors()
        self._input = interpreter.get_input_details()[0]
        self._output = interpreter.get_output_details()[0]
        # set_tensor / invoke / get_tensor share interpreter buffers
        self._lock = threading.Lock()

    def predict(self, batch: np.ndarray) -> np.ndarray:
        # ---------- INPUT ----------
        if self._input["dtype"] == np.uint8:
            scale, zero_point = self._input["quantization"]
            batch = (batch / scale + zero_point).astype(np.uint8)
        else:
            batch = batch.astype(np.float32)

        with self._lock:
            self._interpreter.set_tensor(self._input["index"], batch)
            self._interpreter.invoke()
            output = self._interpreter.get_tensor(self._output["index"]).copy()

        # ---------- OUTPUT ----------
        if self._output["dtype"] == np.uint8:
            scale, zero_point = self._output["quantization"]
            output = (output.astype(np.float32) - zero_point) * scale

        return _as_probabilities(output)


def _as_probabilities(output: np.ndarray) -> np.ndarray:
    """Softmax each row unless it already is a probability distribution."""
    output = output.astype(np.float32)
    rows = output.reshape(output.shape[0], -1) if output.ndim > 1 else output[None, :]
    if rows.size == 0:
        return output
    in_range = np.all(rows >= 0) and np.all(rows <= 1)
    if in_range and np.allclose(rows.sum(axis=1), 1.0, atol=1e-3):
        return output
    exp = np.exp(rows - rows.max(axis=1, keepdims=True))
    return (exp / exp.sum(axis=1, keepdims=True)).reshape(output.shape)


def load_classifier(path: Path) -> Classifier:
    """Load the classifier stored at *path*, picking the backend by suffix."""
    if not path.exists():
        raise ModelLoadError(f"No model file found at {path}")

    try:
        if path.suffix.lower() == ".tflite":
            logger.info("Loading TFLite model from %s …", path)
            return TFLiteClassifier(compat.tflite_interpreter(str(path)))
        logger.info("Loading Keras model from %s …", path)
        return KerasClassifier(compat.load_keras_model(str(path)))
    except Exception as exc:
        raise ModelLoadError(f"Could not load model from {path}: {exc}") from exc


# ──────────────────────────────────────────────
# Labels
# ──────────────────────────────────────────────
def read_labels(path: Path | None) -> list[str]:
    """Return the class names stored at *path*, or ``[]`` when there are none.

    ``labels.txt`` files hold one class per line, optionally prefixed with the
    class index (``"0 cat"``).  ``.json`` files are Teachable Machine
    ``metadata.json`` documents with a ``"labels"`` list.
    """
    if path is None or not path.is_file():
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read label file %s: %s", path, exc)
        return []

    if path.suffix.lower() == ".json":
        try:
            labels = json.loads(text).get("labels", [])
        except (ValueError, AttributeError):
            logger.warning("Ignoring malformed label file %s", path)
            return []
        return [str(label) for label in labels]

    labels = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        index, _, name = line.partition(" ")
        labels.append(name.strip() if index.isdigit() and name.strip() else line)
    return labels


# ──────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────
class ModelRegistry:
    """Owns the loaded classifier and its label set for the process lifetime."""

    def __init__(
        self,
        model_path: Path,
        labels_path: Path | None = None,
        loader: Callable[[Path], Classifier] = load_classifier,
    ) -> None:
        self.model_path = model_path
        self.labels_path = labels_path
        self._loader = loader
        self._model: Classifier | None = None
        self._labels: tuple[str, ...] = ()
        self.load_error: str | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> ModelRegistry:
        return cls(settings.model_path, settings.labels_file)

    async def load(self) -> Classifier | None:
        """Load model and labels; failures are logged, never raised."""
        try:
            model = await asyncio.to_thread(self._loader, self.model_path)
        except ModelLoadError as exc:
            self.load_error = str(exc)
            logger.error("❌ Model load failed: %s", exc)
            return None
        except Exception as exc:
            self.load_error = f"Could not load model from {self.model_path}: {exc}"
            logger.exception("❌ Model load failed")
            return None

        labels = await asyncio.to_thread(read_labels, self.labels_path)
        if labels:
            logger.info("Loaded %d labels from %s", len(labels), self.labels_path)
        else:
            logger.warning("No label file at %s – using synthesized class names.", self.labels_path)

        self._labels = tuple(labels)
        self._model = model
        self.load_error = None
        logger.info("✅ Model loaded successfully (%s).", model.backend)
        return model

    def is_ready(self) -> bool:
        return self._model is not None

    def get(self) -> Classifier:
        if self._model is None:
            raise ModelNotLoaded()
        return self._model

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    @property
    def backend(self) -> str | None:
        return self._model.backend if self._model is not None else None

    def clear(self) -> None:
        """Release the model (called at shutdown)."""
        if self._model is not None and self._model.backend == "keras":
            compat.clear_session()
        self._model = None
        self._labels = ()
        logger.info("Model cleared.")
