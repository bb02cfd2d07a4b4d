import asyncio
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import candidates as candidates_api
from .api import jobs as jobs_api
from .api import search as search_api
from .api import system as system_api
from .config import FRONTEND_ORIGINS, VECTOR_INDEX_BACKEND
from .utils.dependencies import get_orchestrator
from .utils.error_handlers import AppError, app_error_response, get_error_message

app = FastAPI(title="AI Candidate Job Matcher")

app.include_router(candidates_api.router)
app.include_router(jobs_api.router)
app.include_router(search_api.router)
app.include_router(system_api.router)

logger = logging.getLogger(__name__)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPException with user-friendly messages."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Domain errors: not-found, embedding/index outages, dimension mismatch."""
    return app_error_response(exc)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError with user-friendly message."""
    logger.warning("ValueError: %s", exc)
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": str(exc) or get_error_message("validation_error"),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors globally."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": get_error_message("server_error"),
        },
    )


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "Backend running",
        "service": "AI Candidate Job Matcher",
        "vector_index": VECTOR_INDEX_BACKEND,
    }


_default_origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173", "http://127.0.0.1:5173"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *FRONTEND_ORIGINS],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    # Best-effort: the server still boots when the index backend is down;
    # requests then fail with IndexUnavailable.
    try:
        orchestrator = app.dependency_overrides.get(get_orchestrator, get_orchestrator)()
        await asyncio.to_thread(orchestrator.indexes.ensure_ready)
        logger.info("Vector indexes ready (backend=%s)", VECTOR_INDEX_BACKEND)
    except AppError as e:
        logger.error("Vector index init failed: %s", e.message)
