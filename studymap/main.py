"""
StudyMap: Study Material Generation Service
============================================
FastAPI entry point.
  • Global exception handler, never crashes, always returns JSON
  • One MongoDB connection per process, opened in the lifespan
  • Mind maps, notes, syllabus extraction and quizzes under /api/v1
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studymap.core.config import settings
from studymap.core.exceptions import PersistenceError
from studymap.db.database import Database
from studymap.schemas.api import ErrorResponse, HealthResponse
from studymap.api.v1.endpoints import mindmaps, notes, quiz, syllabus

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ── Lifespan ─────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with Database(settings.MONGODB_URI, settings.MONGODB_DB).with_connection() as db:
        app.state.db = db
        logger.info(f"[STARTUP] ✓ StudyMap {VERSION} ready (AI_PROVIDER={settings.AI_PROVIDER})")
        yield


# ── App ──────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="StudyMap: Study Material Service",
    description=(
        "Educational AI microservice.\n"
        "Chapter topics → video-enriched mind map with generated study notes."
    ),
    version=VERSION,
    lifespan=lifespan,
    responses={500: {"model": ErrorResponse}},
)


# ── Exception Handlers ───────────────────────────────────────────────────────
@app.exception_handler(PersistenceError)
async def persistence_exception_handler(request: Request, exc: PersistenceError):
    logger.error(f"[DB] ✗ {request.url.path}: {exc}")
    body = ErrorResponse(message="Database unavailable.", code="persistence_error", detail=str(exc))
    return JSONResponse(status_code=503, content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all: every unhandled exception returns a clean JSON envelope."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    body = ErrorResponse(
        status="error",
        message="An internal server error occurred.",
        detail=str(exc),
    )
    return JSONResponse(status_code=500, content=body.model_dump())


# ── CORS ─────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Health Check ─────────────────────────────────────────────────────────────
@app.get("/", tags=["System"], response_model=HealthResponse)
async def health_check():
    return HealthResponse(
        status="operational",
        service="StudyMap",
        version=VERSION,
        details={
            "ai_provider": settings.AI_PROVIDER,
            "youtube": bool(settings.YOUTUBE_API_KEY),
        },
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(mindmaps.router, prefix="/api/v1", tags=["Mind Maps"])
app.include_router(notes.router, prefix="/api/v1", tags=["Notes"])
app.include_router(syllabus.router, prefix="/api/v1", tags=["Syllabus"])
app.include_router(quiz.router, prefix="/api/v1", tags=["Quiz"])
