"""Service layer – the per-request prediction pipeline.

``read → preprocess → predict → rank → respond``, with the scratch file
removed exactly once whichever way the request ends.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from src.tmserve.errors import InferenceFailure
from src.tmserve.schemas.predict import PredictionResponse
from src.tmserve.services.inference_service import InferenceEngine
from src.tmserve.services.model_service import ModelRegistry
from src.tmserve.services.preprocess_service import preprocess
from src.tmserve.services.ranking_service import rank, top_prediction
from src.tmserve.services.storage_service import discard_upload

logger = logging.getLogger(__name__)


class PredictionPipeline:
    def __init__(self, registry: ModelRegistry, engine: InferenceEngine) -> None:
        self.registry = registry
        self.engine = engine

    async def run(self, upload_path: Path) -> PredictionResponse:
        """Classify the image stored at *upload_path*, then delete it.

        Raises ``ModelNotLoaded`` before readiness and ``InferenceFailure``
        (or one of its subclasses) for anything that goes wrong afterwards.
        """
        try:
            model = self.registry.get()
            try:
                data = await asyncio.to_thread(upload_path.read_bytes)
                batch = await asyncio.to_thread(preprocess, data)
                scores = await self.engine.predict(model, batch)
                predictions = rank(scores, self.registry.labels)
            except InferenceFailure as exc:
                logger.error("Inference failed for %s: %s", upload_path.name, exc)
                raise
            except Exception as exc:
                logger.exception("Inference failed for %s", upload_path.name)
                raise InferenceFailure(str(exc)) from exc

            return PredictionResponse(
                success=True,
                predictions=predictions,
                top_prediction=top_prediction(predictions),
            )
        finally:
            await asyncio.to_thread(discard_upload, upload_path)
