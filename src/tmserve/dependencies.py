"""FastAPI dependencies – hand shared services to the routers."""

from pathlib import Path

from fastapi import Depends, Request

from src.tmserve.config import settings
from src.tmserve.services.inference_service import InferenceEngine
from src.tmserve.services.model_service import ModelRegistry
from src.tmserve.services.pipeline_service import PredictionPipeline


def get_registry(request: Request) -> ModelRegistry:
    return request.app.state.registry


def get_upload_dir() -> Path:
    return settings.upload_dir


def get_pipeline(registry: ModelRegistry = Depends(get_registry)) -> PredictionPipeline:
    return PredictionPipeline(
        registry=registry,
        engine=InferenceEngine(timeout=settings.inference_timeout or None),
    )
