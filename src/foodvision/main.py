"""FastAPI entrypoint for the FoodVision gateway."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .errors import GatewayError
from .routes import predict
from .services.interpreter import ClassList
from .services.invoker import ModelPath, PredictionClient, load_credentials
from .services.pipeline import PredictionPipeline, Predictor
from .utils.logger import get_logger

logger = get_logger(__name__)


def build_pipeline(settings: Settings, predictor: Predictor) -> PredictionPipeline:
    if settings.class_names_file:
        class_list = ClassList.from_file(settings.class_names_file)
    else:
        class_list = ClassList.from_names(settings.class_names)
    return PredictionPipeline(
        class_list,
        predictor,
        image_size=(settings.image_size, settings.image_size),
        max_upload_bytes=settings.max_upload_bytes,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "pipeline", None) is not None:
        yield
        return

    settings: Settings = app.state.settings
    model_path = ModelPath(
        project=settings.project,
        region=settings.region,
        model=settings.model_name,
        version=settings.model_version,
        endpoint=settings.endpoint,
    )
    credentials = load_credentials(settings.credentials_path)
    async with httpx.AsyncClient(timeout=settings.predict_timeout) as http_client:
        client = PredictionClient(
            model_path, credentials, http_client, timeout=settings.predict_timeout
        )
        app.state.pipeline = build_pipeline(settings, client)
        logger.info(
            "Serving {model} with {count} classes",
            model=model_path.name,
            count=len(app.state.pipeline.class_list),
        )
        try:
            yield
        finally:
            client.close()
    app.state.pipeline = None


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("Unhandled error on {path}", path=request.url.path)
    return JSONResponse(
        status_code=500, content={"error": "internal_error", "detail": "Internal server error"}
    )


def create_app(
    settings: Optional[Settings] = None, predictor: Optional[Predictor] = None
) -> FastAPI:
    """Build the API; an injected ``predictor`` replaces the remote client."""
    settings = settings or get_settings()
    app = FastAPI(title="FoodVision Gateway", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.pipeline = build_pipeline(settings, predictor) if predictor is not None else None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(predict.router, tags=["prediction"])

    @app.get("/health", tags=["system"])
    async def healthcheck() -> dict[str, str]:
        """Simple readiness endpoint for orchestration and CI checks."""
        return {"status": "ok"}

    return app


app = create_app()
