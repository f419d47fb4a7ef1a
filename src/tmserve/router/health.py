"""Router – status and readiness checks."""

from fastapi import APIRouter, Depends

from src.tmserve.dependencies import get_registry
from src.tmserve.schemas.health import HealthResponse, StatusResponse
from src.tmserve.services.model_service import ModelRegistry

router = APIRouter(tags=["Health"])


@router.get("/", response_model=StatusResponse)
def status() -> StatusResponse:
    """Liveness check; also the target of keep-alive requests."""
    return StatusResponse(
        status="online",
        message="Image classification inference server is running.",
    )


@router.get("/health", response_model=HealthResponse)
def health_check(registry: ModelRegistry = Depends(get_registry)) -> HealthResponse:
    """Readiness check – reports whether the model has finished loading."""
    return HealthResponse(status="ok", model_loaded=registry.is_ready())
