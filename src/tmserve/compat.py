"""Compatibility shim – TensorFlow / TFLite runtime imports.

In **production** only ``tflite-runtime`` may be installed (~5 MB), which is
enough for ``.tflite`` exports.  In **development** the full ``tensorflow``
package is available and also serves Keras exports.

Imports are resolved on first use so the HTTP layer starts (and the test
suite runs) without either package being importable.
"""

from __future__ import annotations

from typing import Any


def has_tensorflow() -> bool:
    """Return ``True`` when the full TensorFlow package can be imported."""
    try:
        import tensorflow  # noqa: F401  # type: ignore[import-untyped]
    except ImportError:
        return False
    return True


def load_keras_model(path: str) -> Any:
    """Load a Keras model (``.h5``, ``.keras`` or SavedModel directory)."""
    import tensorflow as tf  # type: ignore[import-untyped]

    return tf.keras.models.load_model(path, compile=False)


def tflite_interpreter(model_path: str) -> Any:
    """Build a TFLite interpreter from whichever runtime is installed."""
    try:
        # Production: lightweight tflite-runtime package
        from tflite_runtime.interpreter import Interpreter  # type: ignore[import-untyped]
    except ImportError:
        # Development: full TensorFlow
        from tensorflow.lite.python.interpreter import Interpreter  # type: ignore[import-untyped]
    return Interpreter(model_path=model_path)


def clear_session() -> None:
    """Release Keras global state, if TensorFlow is present."""
    if has_tensorflow():
        import tensorflow as tf  # type: ignore[import-untyped]

        tf.keras.backend.clear_session()
