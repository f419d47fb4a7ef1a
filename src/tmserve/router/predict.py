"""Router – image upload and classification."""

from pathlib import Path

from fastapi import APIRouter, Depends, File, UploadFile

from src.tmserve.config import settings
from src.tmserve.dependencies import get_pipeline, get_upload_dir
from src.tmserve.errors import MissingImage
from src.tmserve.schemas.predict import ErrorResponse, PredictionResponse
from src.tmserve.services.pipeline_service import PredictionPipeline
from src.tmserve.services.storage_service import save_upload

router = APIRouter(tags=["Prediction"])


@router.post(
    "/predict",
    response_model=PredictionResponse,
    responses={
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def predict_image(
    image: UploadFile | None = File(None),
    pipeline: PredictionPipeline = Depends(get_pipeline),
    upload_dir: Path = Depends(get_upload_dir),
) -> PredictionResponse:
    """
    Classify an uploaded image.

    Parameters
    ----------
    image : UploadFile – multipart field holding the image (jpg, png, webp, …).

    Returns every class with its probability, highest first, plus the top
    prediction on its own.
    """
    if image is None:
        raise MissingImage()

    # ── stage the upload; the pipeline deletes it ──
    upload_path = await save_upload(image, upload_dir, settings.max_upload_size)

    return await pipeline.run(upload_path)
