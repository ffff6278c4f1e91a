"""FastAPI application for the calculation sync service."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from calcsync import __version__
from calcsync.models import get_db, init_database
from calcsync.sync import (
    InvalidArgument,
    NotFound,
    SqlEntityStore,
    StoreUnavailable,
    SyncError,
)

from .config import Settings
from .routes import sync
from .schemas import ErrorResponse, HealthResponse

# Get settings
settings = Settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Make sure the tables exist before serving requests."""
    logger.info("Starting calcsync service")
    init_database()
    yield
    logger.info("Shutting down calcsync service")


app = FastAPI(
    title="Calculation Sync Service",
    description="Multi-device sync and conflict resolution for calculation "
    "records and parameter sets",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(sync.router, prefix="/api/sync", tags=["sync"])


@app.get("/health", response_model=HealthResponse, tags=["health"])
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint (no authentication required).

    Returns service health and database connectivity status.
    """
    if SqlEntityStore(db).ping():
        return HealthResponse(status="ok", database="connected")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "error", "database": "disconnected"},
    )


# Exception handlers
ERROR_STATUS = [
    (InvalidArgument, status.HTTP_400_BAD_REQUEST, "invalid_argument"),
    (NotFound, status.HTTP_404_NOT_FOUND, "not_found"),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "store_unavailable"),
]


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    """Map engine errors onto HTTP status codes."""
    for error_type, status_code, error_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            logger.warning(f"{request.method} {request.url.path}: {exc}")
            return JSONResponse(
                status_code=status_code,
                content=ErrorResponse(detail=str(exc), error_code=error_code).model_dump(),
            )

    logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(detail=str(exc), error_code="store_error").model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            detail="Internal server error", error_code="internal_error"
        ).model_dump(),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
