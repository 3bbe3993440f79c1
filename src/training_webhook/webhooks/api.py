"""
Webhook API router for Typeform training results.
Uses dependency injection and configuration-driven design.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from .. import __version__
from ..config.settings import WebhookConfig, get_config
from ..core.exceptions import ErrorResponseBuilder, TrainingWebhookError
from .models import HealthStatus
from .services import TrainingResultProcessor, TrainingResultProcessorFactory


def create_webhook_router(
    config: WebhookConfig | None = None,
    processor: TrainingResultProcessor | None = None,
) -> APIRouter:
    """
    Create webhook router with configurable dependencies.

    Args:
        config: Webhook configuration (defaults to environment configuration)
        processor: Pre-built processor; created from config if not provided

    Returns:
        Configured FastAPI router
    """
    router = APIRouter(prefix="/webhooks", tags=["webhooks"])

    config = config or get_config()
    processor = processor or TrainingResultProcessorFactory.create_processor(config)
    signature_header = config.signature_header

    logger.info("✅ Webhook router configured:")
    logger.info(f"🔏 Signature header: {signature_header}")
    logger.info(f"🎯 Passing grade: {processor.settings.passing_grade}")

    def get_processor() -> TrainingResultProcessor:
        """Dependency injection for the result processor."""
        return processor

    @router.post("/typeform")
    async def handle_typeform_webhook(
        request: Request,
        result_processor: TrainingResultProcessor = Depends(get_processor),
    ) -> Response:
        """
        Handle a Typeform training result.

        Every failure is caught here and returned as a client error; steps
        already committed are not rolled back.
        """
        raw_body = await request.body()
        signature = request.headers.get(signature_header)

        try:
            data = _parse_body(raw_body)
            await result_processor.process_webhook(data, signature, raw_body)

        except TrainingWebhookError as e:
            logger.warning(f"❌ Typeform webhook rejected: {e.error_code}: {e.message}")
            status_code, body = ErrorResponseBuilder.build(e)
            return JSONResponse(status_code=status_code, content=body)

        except Exception as e:
            logger.opt(exception=e).error(f"❌ Error in Typeform webhook: {e}")
            status_code, body = ErrorResponseBuilder.build(e)
            return JSONResponse(status_code=status_code, content=body)

        return Response(status_code=200)

    @router.get("/health")
    async def webhook_health_check(
        result_processor: TrainingResultProcessor = Depends(get_processor),
    ) -> HealthStatus:
        """Health of the processor and its stores."""
        try:
            health_data = await result_processor.health_check()

            return HealthStatus(
                status=health_data.get("status", "unknown"),
                services={
                    "processor": health_data.get("processor", "unknown"),
                    "log_store": health_data.get("log_store", "unknown"),
                    "user_store": health_data.get("user_store", "unknown"),
                },
                metrics=result_processor.get_metrics(),
            )

        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return HealthStatus(status="unhealthy", services={"error": str(e)})

    @router.get("/metrics")
    async def webhook_metrics(
        result_processor: TrainingResultProcessor = Depends(get_processor),
    ) -> dict[str, Any]:
        """Get webhook processing metrics."""
        return result_processor.get_metrics()

    return router


def _parse_body(raw_body: bytes) -> Any:
    if not raw_body:
        return {}
    try:
        return json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError(f"Invalid JSON payload: {e}") from e


def create_standalone_app(
    config: WebhookConfig | None = None,
    processor: TrainingResultProcessor | None = None,
) -> FastAPI:
    """
    Create standalone FastAPI app for the webhook service.

    Args:
        config: Webhook configuration (defaults to environment configuration)
        processor: Pre-built processor, mainly for tests

    Returns:
        Configured FastAPI application
    """
    from fastapi.middleware.cors import CORSMiddleware

    config = config or get_config()
    config.log_configuration()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown events."""
        logger.info("Starting training results webhook")
        if not config.use_local_collaborators and config.create_tables_on_startup:
            from ..infrastructure.database import get_database_manager

            await get_database_manager(config.database_url).create_tables()

        yield

        logger.info("Shutting down training results webhook")
        if not config.use_local_collaborators:
            from ..infrastructure.database import dispose_database_managers

            await dispose_database_managers()

    app = FastAPI(
        title="Training Results Webhook",
        description="Receives Typeform training exam results",
        version=__version__,
        docs_url="/docs" if not config.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(create_webhook_router(config=config, processor=processor))

    @app.get("/")
    async def root():
        """Root endpoint with service information."""
        return {
            "service": "Training Results Webhook",
            "version": __version__,
            "environment": config.environment,
            "configuration": {
                "use_local_collaborators": config.use_local_collaborators,
                "passing_grade": config.passing_grade,
                "completion_timezone": config.completion_timezone,
                "training_api_configured": bool(config.training_api_base_url),
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app
