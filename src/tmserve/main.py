"""Image classification server – FastAPI application entry-point."""

from contextlib import asynccontextmanager
import asyncio
import logging
from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from src.tmserve.config import settings
from src.tmserve.errors import MissingImage, ServiceError
from src.tmserve.router import health, models, predict
from src.tmserve.services.keepalive_service import KeepAliveScheduler
from src.tmserve.services.model_service import ModelRegistry
from src.tmserve.services.storage_service import purge_uploads

# Configure logging from settings
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Lifespan: load the model in the background, start keep-alive
# ──────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    removed = purge_uploads(settings.upload_dir)
    if removed:
        logger.warning("Removed %d stale upload(s) from %s", removed, settings.upload_dir)

    logger.info("🚀 Loading model from %s …", settings.model_path)
    load_task = asyncio.create_task(app.state.registry.load(), name="model-load")

    keepalive = KeepAliveScheduler.from_settings(settings)
    keepalive.start()

    yield

    logger.info("🛑 Shutting down – releasing model …")
    await keepalive.stop()
    if not load_task.done():
        load_task.cancel()
    app.state.registry.clear()


# ──────────────────────────────────────────────
# Application factory
# ──────────────────────────────────────────────
app = FastAPI(
    title="Image Classification API",
    description="Classify uploaded images with a Teachable Machine model.",
    version="1.0.0",
    lifespan=lifespan,
)
app.state.registry = ModelRegistry.from_settings(settings)

# ── CORS middleware (configured from environment variables) ──
app.add_middleware(
    middleware_class=CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
)

logger.info("CORS configured with origins: %s", settings.cors_origins_list)


# ── error responses ──
@app.exception_handler(ServiceError)
async def service_error_handler(_request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    # an ``image`` field that is not a file counts as no image at all
    if any(tuple(err.get("loc", ()))[-1:] == ("image",) for err in errors):
        error = MissingImage()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}" for err in errors
    )
    return JSONResponse(status_code=422, content={"error": "invalid request", "details": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": "internal error", "details": str(exc)})


# ── register routers ──
app.include_router(health.router)
app.include_router(models.router)
app.include_router(predict.router)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
