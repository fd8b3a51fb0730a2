"""FastAPI app for the study proxy.

Run with ``uvicorn aceai.app.main:app``.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aceai.app.api.course_guide import router as course_guide_router
from aceai.app.api.mock_interview import router as mock_interview_router
from aceai.app.api.proxy import upstream_url
from aceai.app.core.config import settings
from aceai.app.core.http_client import init_http_client
from aceai.app.core.logging import get_logger, setup_logging
from aceai.app.exceptions import InputValidationError
from aceai.app.middleware.request_id import RequestIdMiddleware, get_request_id

logger = get_logger(__name__)

# Browsers only let the client read these if they are exposed explicitly
EXPOSED_HEADERS = ["X-Request-ID"] + [
    f"X-RateLimit-{window}{field}"
    for window in ("", "Minute-", "Day-")
    for field in ("Limit", "Remaining", "Reset")
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
    async with init_http_client() as http_client:
        logger.info(
            "Proxy ready",
            extra={"upstream": upstream_url(""), "debug_mode": settings.debug},
        )
        yield {"http_client": http_client}
    logger.info("Proxy stopped")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Generic 500 body; the exception itself is only shown in debug mode."""
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
            extra={"request_id": request_id},
        )

        content = {
            "error": "internal_error",
            "message": str(exc) if settings.debug else "Internal server error",
            "request_id": request_id,
        }
        if settings.debug:
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()

    app = FastAPI(
        title="AceAI Study Proxy",
        description="Validating proxy in front of the AceAI study backend",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Added last so it wraps the request ID middleware and answers preflights first
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
        max_age=600,
    )

    app.include_router(course_guide_router)
    app.include_router(mock_interview_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "upstream": upstream_url("")}

    register_exception_handlers(app)
    return app


app = create_app()
