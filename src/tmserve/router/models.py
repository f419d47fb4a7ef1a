"""Router – loaded model details."""

from fastapi import APIRouter, Depends

from src.tmserve.config import IMAGE_SIZE
from src.tmserve.dependencies import get_registry
from src.tmserve.schemas.model import ModelInfo
from src.tmserve.services.model_service import ModelRegistry

router = APIRouter(tags=["Models"])


@router.get("/model", response_model=ModelInfo)
def get_model_info(registry: ModelRegistry = Depends(get_registry)) -> ModelInfo:
    """Return the backend, path and labels of the served model."""
    return ModelInfo(
        loaded=registry.is_ready(),
        backend=registry.backend,
        model_path=str(registry.model_path),
        labels=list(registry.labels),
        input_size=IMAGE_SIZE,
        error=registry.load_error,
    )
