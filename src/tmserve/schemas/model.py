from pydantic import BaseModel, ConfigDict


class ModelInfo(BaseModel):
    """Response schema for GET /model."""
    model_config = ConfigDict(protected_namespaces=())

    loaded: bool
    backend: str | None
    model_path: str
    labels: list[str]
    input_size: tuple[int, int]
    error: str | None = None
