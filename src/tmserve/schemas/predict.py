from pydantic import BaseModel, ConfigDict, Field


class Prediction(BaseModel):
    """Single class probability."""
    model_config = ConfigDict(populate_by_name=True)

    class_name: str = Field(alias="class")
    probability: float


class PredictionResponse(BaseModel):
    """Response schema for POST /predict."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    predictions: list[Prediction]
    top_prediction: Prediction = Field(alias="topPrediction")


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""
    error: str
    details: str | None = None
