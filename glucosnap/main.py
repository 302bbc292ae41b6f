"""
GlucoSnap Analysis Service - FastAPI Backend

Accepts a food or glucose-meter photo, runs it through the upstream Dify
analysis app and answers with a typed result:

  - glucose_reading: value, unit, interpretation, recommendation
  - food_assessment: foods with a green / yellow / red traffic light
  - rejected: the image could not be analyzed
"""
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import time

from .config import ServiceConfig, load_config
from .dify_client import DifyClient
from .errors import ErrorKind, NetworkError, UpstreamTimeout, error_message
from .models import (
    AnalysisErrorResponse,
    AnalysisSuccessResponse,
    ConnectionDiagnostics,
    HealthResponse,
)
from .orchestrator import AnalysisOrchestrator
from .structured_logging import log_request, set_request_id, setup_logging

logger = logging.getLogger(__name__)

MEDICAL_DISCLAIMER = {
    "zh": "本应用提供的信息仅供参考，不能替代专业医疗建议。请在做出任何医疗决定前咨询您的医生。",
    "en": (
        "The information provided by this app is for reference only and cannot replace "
        "professional medical advice. Please consult your doctor before making any medical decisions."
    ),
}


def create_app(
    config: Optional[ServiceConfig] = None,
    client: Optional[DifyClient] = None,
    configure_logging: bool = True,
) -> FastAPI:
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(level=config.log_level, use_json=config.log_json)

        logger.info("Starting GlucoSnap analysis service...")
        dify = client or DifyClient(config)
        app.state.config = config
        app.state.client = dify
        app.state.orchestrator = AnalysisOrchestrator(config, dify)
        logger.info(
            f"Ready to serve requests (api_style={config.api_style.value}, "
            f"timeout={config.timeout_seconds}s)"
        )
        yield
        logger.info("Shutting down...")
        if client is None:
            await dify.aclose()

    app = FastAPI(
        title="GlucoSnap Analysis Service",
        description="Food and glucose-meter photo analysis backed by a Dify app",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        set_request_id(request.headers.get("X-Request-ID"))
        started = time.perf_counter()
        response = await call_next(request)
        log_request(
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            error_code=response.headers.get("X-Error-Code"),
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        # A non-file "image" part counts as no image at all
        if request.url.path != "/analyze":
            return await request_validation_exception_handler(request, exc)
        kind = ErrorKind.INVALID_FILE
        logger.warning(f"Rejected malformed analyze request: {len(exc.errors())} validation error(s)")
        body = AnalysisErrorResponse(
            error=error_message(kind, config.default_language),
            code=kind.code,
        )
        return JSONResponse(
            body.model_dump(),
            status_code=kind.http_status,
            headers={"X-Error-Code": kind.code},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        cfg: ServiceConfig = request.app.state.config
        return HealthResponse(
            status="healthy" if cfg.has_credential else "degraded",
            has_api_key=cfg.has_credential,
            api_style=cfg.api_style.value,
            timeout_seconds=cfg.timeout_seconds,
            max_upload_bytes=cfg.max_upload_bytes,
        )

    @app.post("/analyze")
    async def analyze(
        request: Request,
        image: Optional[UploadFile] = File(None),
        language: Optional[str] = Form(None),
    ):
        """Analyze a food or glucose-meter photo."""
        orchestrator: AnalysisOrchestrator = request.app.state.orchestrator

        content = None
        filename = None
        content_type = None
        if image is not None:
            filename = image.filename
            if image.content_type and image.content_type.startswith("image/"):
                content_type = image.content_type
            try:
                content = await image.read()
            finally:
                await image.close()

        outcome = await orchestrator.analyze(filename, content, language, content_type)
        del content

        if not outcome.ok:
            failure = outcome.failure
            body = AnalysisErrorResponse(error=failure.message, code=failure.code)
            return JSONResponse(
                body.model_dump(),
                status_code=failure.http_status,
                headers={"X-Error-Code": failure.code},
            )

        disclaimer = MEDICAL_DISCLAIMER[outcome.language] if config.disclaimer_enabled else None
        body = AnalysisSuccessResponse(data=outcome.result, disclaimer=disclaimer)
        return JSONResponse(body.model_dump(mode="json", exclude_none=True))

    @app.get("/diagnostics/connection")
    async def connection_test(request: Request):
        """Check that the credential is set and the upstream app answers."""
        cfg: ServiceConfig = request.app.state.config
        dify: DifyClient = request.app.state.client

        if not cfg.has_credential:
            return JSONResponse(
                {
                    "success": False,
                    "error": "DIFY_API_KEY is not configured",
                    "details": {"has_api_key": False, "api_key_length": 0},
                },
                status_code=500,
            )

        diagnostics = ConnectionDiagnostics(
            has_api_key=True,
            api_key_length=len(cfg.api_key),
            api_key_prefix=cfg.masked_key(),
            timestamp=datetime.now(timezone.utc).isoformat(),
        ).model_dump()

        try:
            response = await dify.check_connection()
        except (NetworkError, UpstreamTimeout) as e:
            logger.error(f"Dify connection test failed: {e}")
            return JSONResponse(
                {
                    "success": False,
                    "error": "Dify API network connection failed",
                    "diagnostics": diagnostics,
                    "network_error": {"name": type(e).__name__, "message": str(e)},
                },
                status_code=503,
            )

        logger.info(f"Dify connection test status: {response.status_code}")
        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = response.text
            return {
                "success": True,
                "message": "Dify API connection OK",
                "diagnostics": diagnostics,
                "api_response": {"status": response.status_code, "data": data},
            }

        return JSONResponse(
            {
                "success": False,
                "error": "Dify API call failed",
                "diagnostics": diagnostics,
                "api_response": {"status": response.status_code, "error_text": response.text},
            },
            status_code=response.status_code,
        )

    @app.post("/diagnostics/workflow")
    async def workflow_test(request: Request):
        """Send an empty run request and report what the upstream says."""
        cfg: ServiceConfig = request.app.state.config
        dify: DifyClient = request.app.state.client

        if not cfg.has_credential:
            return JSONResponse(
                {"success": False, "error": "DIFY_API_KEY is not configured"},
                status_code=500,
            )

        try:
            response = await dify.test_workflow()
        except (NetworkError, UpstreamTimeout) as e:
            return JSONResponse(
                {"success": False, "error": "Workflow endpoint test failed", "details": str(e)},
                status_code=503,
            )

        return {
            "success": True,
            "message": "Workflow endpoint test finished",
            "test_result": {"status": response.status_code, "response": response.text},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
