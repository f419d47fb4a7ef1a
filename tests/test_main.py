"""Tests for the image classification API endpoints."""

import asyncio
import io
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from src.tmserve.config import settings
from src.tmserve.dependencies import get_registry, get_upload_dir
from src.tmserve.main import app
from src.tmserve.services.model_service import ModelRegistry

client = TestClient(app)


class StubClassifier:
    """Returns fixed scores and records the batches it was given."""

    backend = "stub"

    def __init__(self, scores: list[float]) -> None:
        self.scores = np.asarray([scores], dtype=np.float64)
        self.batches: list[np.ndarray] = []

    def predict(self, batch: np.ndarray) -> np.ndarray:
        self.batches.append(batch)
        return self.scores


class FailingClassifier:
    backend = "stub"

    def predict(self, batch: np.ndarray) -> np.ndarray:
        raise ValueError("expected shape (1, 299, 299, 3)")


def _image_bytes(mode: str = "RGB", size: tuple[int, int] = (100, 100), color=None) -> bytes:
    if color is None:
        color = (10, 120, 200, 255)[: len(mode)] if mode in ("RGB", "RGBA") else 128
    buf = io.BytesIO()
    Image.new(mode, size, color=color).save(buf, format="PNG")
    return buf.getvalue()


def _ready_registry(tmp_path: Path, model, labels: str | None = None) -> ModelRegistry:
    labels_path = tmp_path / "labels.txt"
    if labels is not None:
        labels_path.write_text(labels, encoding="utf-8")
    registry = ModelRegistry(tmp_path / "keras_model.h5", labels_path, loader=lambda _path: model)
    asyncio.run(registry.load())
    return registry


@pytest.fixture()
def upload_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "uploads"
    directory.mkdir()
    app.dependency_overrides[get_upload_dir] = lambda: directory
    yield directory
    app.dependency_overrides.clear()


def _use_registry(registry: ModelRegistry) -> None:
    app.dependency_overrides[get_registry] = lambda: registry


def _post_image(data: bytes, filename: str = "photo.png"):
    return client.post("/predict", files={"image": (filename, io.BytesIO(data), "image/png")})


# ──────────────────────────────────────────────
# GET / and /health
# ──────────────────────────────────────────────
def test_status() -> None:
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "online"
    assert data["message"]


def test_health_reports_model_not_loaded(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(ModelRegistry(tmp_path / "missing.h5"))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "model_loaded": False}


def test_model_info(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([0.5, 0.5]), "0 cat\n1 dog\n"))
    response = client.get("/model")
    assert response.status_code == 200
    data = response.json()
    assert data["loaded"] is True
    assert data["backend"] == "stub"
    assert data["labels"] == ["cat", "dog"]
    assert data["input_size"] == [224, 224]


# ──────────────────────────────────────────────
# POST /predict
# ──────────────────────────────────────────────
def test_predict_ranks_labels(upload_dir: Path, tmp_path: Path) -> None:
    """100×100 RGB image, three labelled classes."""
    model = StubClassifier([0.7, 0.2, 0.1])
    _use_registry(_ready_registry(tmp_path, model, "cat\ndog\nbird\n"))

    response = _post_image(_image_bytes("RGB", (100, 100)))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["topPrediction"] == {"class": "cat", "probability": 0.7}
    assert [p["class"] for p in data["predictions"]] == ["cat", "dog", "bird"]
    assert [p["probability"] for p in data["predictions"]] == [0.7, 0.2, 0.1]
    assert model.batches[0].shape == (1, 224, 224, 3)


def test_predict_sorts_descending(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([0.1, 0.3, 0.6]), "a\nb\nc\n"))

    data = _post_image(_image_bytes()).json()

    assert [p["class"] for p in data["predictions"]] == ["c", "b", "a"]
    assert data["topPrediction"] == data["predictions"][0]


def test_predict_rgba_without_labels_uses_synthesized_names(upload_dir: Path, tmp_path: Path) -> None:
    """50×50 RGBA image, no label file on disk."""
    _use_registry(_ready_registry(tmp_path, StubClassifier([0.2, 0.5, 0.3])))

    response = _post_image(_image_bytes("RGBA", (50, 50)))

    assert response.status_code == 200
    data = response.json()
    assert sorted(p["class"] for p in data["predictions"]) == ["class1", "class2", "class3"]
    assert data["topPrediction"]["class"] == "class2"


def test_predict_without_image(upload_dir: Path) -> None:
    response = client.post("/predict")
    assert response.status_code == 400
    assert response.json() == {"error": "no image"}


def test_predict_with_text_image_field(upload_dir: Path) -> None:
    response = client.post("/predict", data={"image": "hello"})
    assert response.status_code == 400
    assert response.json() == {"error": "no image"}
    assert list(upload_dir.iterdir()) == []


def test_predict_non_finite_scores(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([0.1, float("nan"), 0.7]), "a\nb\nc\n"))

    response = _post_image(_image_bytes())

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "inference failed"
    assert "non-finite" in data["details"]
    assert list(upload_dir.iterdir()) == []


def test_predict_before_model_load(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(ModelRegistry(tmp_path / "keras_model.h5"))

    response = _post_image(_image_bytes())

    assert response.status_code == 500
    assert response.json() == {"error": "model not loaded"}
    assert list(upload_dir.iterdir()) == []


def test_predict_undecodable_image(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([1.0])))

    response = _post_image(b"definitely not an image", filename="notes.jpg")

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "inference failed"
    assert "decode" in data["details"].lower()
    assert list(upload_dir.iterdir()) == []


def test_predict_grayscale_image_rejected(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([1.0])))

    response = _post_image(_image_bytes("L"))

    assert response.status_code == 500
    assert response.json()["error"] == "inference failed"
    assert "channels" in response.json()["details"]


def test_predict_model_failure(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, FailingClassifier()))

    response = _post_image(_image_bytes())

    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "inference failed"
    assert "299" in data["details"]
    assert list(upload_dir.iterdir()) == []


def test_predict_empty_score_vector(upload_dir: Path, tmp_path: Path) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([])))

    response = _post_image(_image_bytes())

    assert response.status_code == 500
    assert response.json()["error"] == "inference failed"


def test_predict_file_too_large(upload_dir: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _use_registry(_ready_registry(tmp_path, StubClassifier([1.0])))
    monkeypatch.setattr(settings, "max_upload_size", 16)

    response = _post_image(_image_bytes())

    assert response.status_code == 413
    assert response.json()["error"] == "file too large"
    assert list(upload_dir.iterdir()) == []


def test_predict_is_deterministic(upload_dir: Path, tmp_path: Path) -> None:
    model = StubClassifier([0.25, 0.25, 0.5])
    _use_registry(_ready_registry(tmp_path, model, "x\ny\nz\n"))
    image = _image_bytes("RGB", (317, 91))

    first = _post_image(image).json()
    second = _post_image(image).json()

    assert first == second
    np.testing.assert_array_equal(model.batches[0], model.batches[1])


def test_scratch_directory_is_drained(upload_dir: Path, tmp_path: Path) -> None:
    """Each request, successful or not, leaves the scratch directory as it was."""
    _use_registry(_ready_registry(tmp_path, StubClassifier([0.6, 0.4])))
    before = sorted(upload_dir.iterdir())

    for payload in (_image_bytes(), b"garbage", _image_bytes("RGBA", (7, 300))):
        _post_image(payload)
        assert sorted(upload_dir.iterdir()) == before


# ──────────────────────────────────────────────
# Lifespan
# ──────────────────────────────────────────────
def test_server_starts_without_model(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """A missing model file is logged; the server still answers requests."""
    registry = ModelRegistry(tmp_path / "keras_model.h5")
    monkeypatch.setattr(app.state, "registry", registry)
    monkeypatch.setattr(settings, "upload_dir", tmp_path / "uploads")

    with TestClient(app) as live:
        assert live.get("/").status_code == 200
        response = live.post("/predict", files={"image": ("a.png", io.BytesIO(_image_bytes()), "image/png")})

    assert response.status_code == 500
    assert response.json() == {"error": "model not loaded"}
    assert list((tmp_path / "uploads").iterdir()) == []
