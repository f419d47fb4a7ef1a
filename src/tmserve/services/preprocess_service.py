"""Service layer – turn uploaded image bytes into a model-ready batch."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from src.tmserve.config import IMAGE_SIZE
from src.tmserve.errors import DecodeError, UnsupportedChannelLayout

# Colour spaces without alpha that the model cannot consume as-is
_CONVERT_TO_RGB = {"CMYK", "YCbCr", "LAB", "HSV"}


def decode_image(data: bytes) -> np.ndarray:
    """Decode *data* into a ``(H, W, C)`` uint8 array.

    Grayscale images keep a single channel (and are rejected later); palette
    images expand to RGB, or RGBA when they carry transparency.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc

    if image.mode == "P":
        image = image.convert("RGBA" if "transparency" in image.info else "RGB")
    elif image.mode in _CONVERT_TO_RGB:
        image = image.convert("RGB")

    arr = np.asarray(image)
    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    return arr


def preprocess(data: bytes) -> np.ndarray:
    """Decode, drop alpha, resize, normalise and batch an image.

    Returns a ``float32`` array of shape ``(1, 224, 224, 3)`` with values in
    ``[0, 1]``.  The resize stretches to fit; aspect ratio is not kept.
    """
    arr = decode_image(data)

    channels = arr.shape[2]
    if channels == 4:
        arr = arr[:, :, :3]
    elif channels != 3:
        raise UnsupportedChannelLayout(
            f"Expected 3 or 4 channels, got {channels}",
        )

    image = Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8))
    image = image.resize(IMAGE_SIZE, Image.BILINEAR)

    arr = np.asarray(image, dtype=np.float32) / 255.0
    return np.expand_dims(arr, axis=0)  # (1, H, W, 3)
