"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from cropclaim.api.v1.endpoints import health
from cropclaim.api.v1.router import api_router
from cropclaim.core.config import settings
from cropclaim.core.database import close_database, init_database
from cropclaim.core.exceptions import AppError
from cropclaim.services.ai_task_queue import build_task_queue
from cropclaim.temporal.client import close_temporal_client
from cropclaim.temporal.scheduler import InProcessTaskScheduler
from cropclaim.utils.logging import get_logger
from cropclaim.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await asyncio.wait_for(
            init_database(auto_migrate=settings.db.auto_create_tables),
            timeout=settings.db_init_timeout,
        )
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    task_queue = build_task_queue()
    app.state.task_queue = task_queue
    LOGGER.info(f"AI task queue ready (scheduler: {type(task_queue.scheduler).__name__})")

    if isinstance(task_queue.scheduler, InProcessTaskScheduler):
        # Nothing else re-dispatches in-process attempts lost by a restart
        try:
            await task_queue.recover_stale_pending(stale_after_minutes=0, processing_timeout_seconds=0)
        except Exception as e:
            LOGGER.error(f"Stale AI task recovery failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    if isinstance(task_queue.scheduler, InProcessTaskScheduler):
        await task_queue.scheduler.shutdown()

    await close_temporal_client()
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Crop insurance claim intake and AI verification pipeline",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors as RFC 7807 details."""
    if exc.status_code >= 500:
        LOGGER.error(f"Unhandled application error: {exc.message}", exc_info=exc)
    error_detail = create_error_detail(
        title=HTTPStatus(exc.status_code).phrase,
        status=exc.status_code,
        detail=exc.message,
        request=request,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": error_detail.model_dump(mode="json")})


# CORS middleware - added last to ensure it wraps all other middleware/responses
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Include routers
app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint."""
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cropclaim.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
