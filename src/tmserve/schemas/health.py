from pydantic import BaseModel, ConfigDict


class StatusResponse(BaseModel):
    """Response schema for GET /."""
    status: str
    message: str


class HealthResponse(BaseModel):
    """Response schema for GET /health."""
    model_config = ConfigDict(protected_namespaces=())

    status: str
    model_loaded: bool
