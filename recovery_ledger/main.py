"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from recovery_ledger.api.v1.endpoints import health
from recovery_ledger.api.v1.router import api_router
from recovery_ledger.core.config import settings
from recovery_ledger.core.database import init_database, close_database
from recovery_ledger.utils.logging import get_logger

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

    LOGGER.info("Starting database initialization...")
    try:
        await asyncio.wait_for(
            init_database(auto_migrate=settings.environment != "production"),
            timeout=settings.db_init_timeout
        )
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {settings.db_init_timeout}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    yield

    LOGGER.info("Shutting down application")
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Recovery case ledger: statutory allocation of payments and reconciliation of dues",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    # Echoed in the response envelope meta
    request.state.request_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


# CORS middleware - added last to ensure it wraps all other middleware/responses
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "recovery_ledger.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
