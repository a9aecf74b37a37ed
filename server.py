#!/usr/bin/env python3
"""
HTTP front door for multiple-choice question generation.

Exposes the generation orchestrator over HTTP:
  POST /api/generate-mcq  {"topic", "subTopic", "count" | "numberOfQuestions"}
  GET  /api/topics        topic catalogue for client menus
  GET  /api/stats         generation metrics and cache statistics
  GET  /health            liveness check
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

import yaml
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mcq_service.config import Settings, settings
from mcq_service.error_classifier import ErrorClassifier
from mcq_service.error_tracking import capture_error, init_error_tracking
from mcq_service.logging_config import setup_logging
from mcq_service.models import GenerationRequest
from mcq_service.orchestrator import GenerationFailedError, GenerationOrchestrator
from mcq_service.planner import InvalidRequestError
from mcq_service.providers.gemini_provider import GeminiProvider
from mcq_service.topics import TopicCatalog, load_topic_catalog

logger = logging.getLogger(__name__)

SERVICE_NAME = "mcq-generation"


def _error_body(error: str, details: Any) -> Dict[str, Any]:
    return {"error": error, "details": details}


def _build_orchestrator(app_settings: Settings) -> GenerationOrchestrator:
    """Create the Gemini-backed orchestrator.

    Raises:
        RuntimeError: If the Gemini API key is not configured
    """
    if not app_settings.gemini_api_key:
        raise RuntimeError("GEMINI_API_KEY is not set in environment variables")

    provider = GeminiProvider(
        api_key=app_settings.gemini_api_key,
        model=app_settings.gemini_model,
        base_url=app_settings.gemini_base_url,
        timeout=app_settings.request_timeout_seconds,
    )
    if app_settings.check_connection_on_startup:
        if provider.check_connection():
            logger.info("Server is ready to handle requests")
        else:
            logger.warning(
                "Server started but API connection test failed - check your API key"
            )
    return GenerationOrchestrator.from_settings(app_settings, provider=provider)


def _load_catalog(app_settings: Settings) -> Optional[TopicCatalog]:
    try:
        return load_topic_catalog(app_settings.topics_config_path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        logger.warning(f"Topic catalogue unavailable: {e}")
        return None


def create_app(
    app_settings: Optional[Settings] = None,
    orchestrator: Optional[GenerationOrchestrator] = None,
    catalog: Optional[TopicCatalog] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use (global settings if not provided)
        orchestrator: Preassembled orchestrator; built from settings at
            startup when not provided
        catalog: Preloaded topic catalogue; loaded from settings when not provided
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        setup_logging(app_settings.log_level)
        init_error_tracking(app_settings)

        owns_orchestrator = app.state.orchestrator is None
        if owns_orchestrator:
            app.state.orchestrator = _build_orchestrator(app_settings)
        if app.state.catalog is None:
            app.state.catalog = _load_catalog(app_settings)

        yield

        # Shutdown
        app.state.orchestrator.cache.close()
        if owns_orchestrator:
            app.state.orchestrator.provider.close()
        logger.info("MCQ generation service shut down")

    app = FastAPI(title="MCQ Generation Service", lifespan=lifespan)
    app.state.settings = app_settings
    app.state.orchestrator = orchestrator
    app.state.catalog = catalog

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report invalid or missing input as 400 with an error body."""
        errors: List[Dict[str, Any]] = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        missing = any(error["type"] == "missing" for error in errors)
        return JSONResponse(
            status_code=400,
            content=_error_body(
                "Missing required parameters" if missing else "Invalid request",
                errors,
            ),
        )

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": SERVICE_NAME}

    @app.post("/api/generate-mcq")
    def generate_mcq(payload: GenerationRequest, request: Request) -> Any:
        """
        Generate multiple-choice questions.

        Runs in the server's thread pool; batches are generated sequentially
        with pacing, so a large request holds its worker for several seconds.

        Returns:
            {"questions": [...]} possibly with fewer questions than requested
        """
        orchestrator: GenerationOrchestrator = request.app.state.orchestrator

        try:
            questions = orchestrator.run(payload)
        except InvalidRequestError as e:
            return JSONResponse(
                status_code=400, content=_error_body("Invalid request", str(e))
            )
        except GenerationFailedError as e:
            logger.error(f"MCQ generation error: {e}")
            classified = e.classified_error
            if classified is not None and ErrorClassifier.should_alert(classified):
                capture_error(
                    e,
                    context={
                        "topic": payload.topic,
                        "sub_topic": payload.sub_topic,
                        "count": payload.count,
                        "partial_count": e.partial_count,
                        "failure": classified.to_dict(),
                    },
                    tags={"failure_reason": classified.reason.value},
                )
            return JSONResponse(
                status_code=500,
                content=_error_body("Failed to generate MCQ questions", str(e)),
            )

        return {"questions": [q.to_response() for q in questions]}

    @app.get("/api/topics")
    async def list_topics(request: Request) -> Any:
        """Topic catalogue for client menus."""
        catalog: Optional[TopicCatalog] = request.app.state.catalog
        if catalog is None:
            return JSONResponse(
                status_code=503,
                content=_error_body(
                    "Topic catalogue unavailable",
                    "The topic catalogue could not be loaded",
                ),
            )
        return {"version": catalog.version, "topics": catalog.as_mapping()}

    @app.get("/api/stats")
    async def stats(request: Request) -> Dict[str, Any]:
        """Generation metrics and cache statistics."""
        orchestrator: GenerationOrchestrator = request.app.state.orchestrator
        return {
            "metrics": orchestrator.metrics.get_summary(),
            "cache": orchestrator.cache.get_stats(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
