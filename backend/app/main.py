"""
Main FastAPI application for the Page Extraction backend.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import asyncio
import logging
from contextlib import asynccontextmanager

from .config import get_settings
from .exceptions import (
    FileValidationError,
    PayloadTooLargeError,
    PipelineError,
    UnknownDocumentClassError,
    UploadMissingError,
)
from .routers.config import router as config_router
from .routers.extract import router as extract_router
from .routers.health import router as health_router
from .services.workspace import sweep_stale_runs


settings = get_settings()
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

PROCESSING_FAILED = "Failed to process file"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    if settings.RETENTION_LOOP_ENABLE:
        app.state._retention_task = asyncio.create_task(_retention_loop())
    try:
        yield
    finally:
        # Shutdown
        t = getattr(app.state, "_retention_task", None)
        if t and not t.done():
            t.cancel()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health_router, prefix=settings.API_PREFIX)
app.include_router(config_router, prefix=settings.API_PREFIX)
app.include_router(extract_router, prefix=settings.API_PREFIX)


@app.get("/", tags=["root"])
async def root() -> dict:
    """Simple root endpoint."""
    return {"name": app.title, "version": app.version}


@app.exception_handler(FileValidationError)
async def _file_validation_handler(request: Request, exc: FileValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(UnknownDocumentClassError)
async def _document_class_handler(request: Request, exc: UnknownDocumentClassError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(PayloadTooLargeError)
async def _payload_handler(request: Request, exc: PayloadTooLargeError) -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": str(exc)})


@app.exception_handler(PipelineError)
async def _pipeline_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if isinstance(exc, UploadMissingError):
        return JSONResponse(status_code=500, content={"error": str(exc)})
    logger.error("Error processing file: %s", exc)
    return JSONResponse(status_code=500, content={"error": PROCESSING_FAILED})


@app.exception_handler(Exception)
async def _unexpected_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error processing request")
    return JSONResponse(status_code=500, content={"error": PROCESSING_FAILED})


async def _retention_loop() -> None:
    while True:
        try:
            deleted = await asyncio.to_thread(sweep_stale_runs, settings.UPLOAD_DIR, settings.RETENTION_MINUTES)
            if deleted:
                logger.info("Retention: deleted %d stale upload entries", deleted)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Retention loop error: %s", exc)
        await asyncio.sleep(settings.RETENTION_LOOP_INTERVAL_MIN * 60)
