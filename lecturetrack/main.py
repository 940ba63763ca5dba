"""
Point d'entrée principal de l'API LectureTrack.
Démarrage : uvicorn lecturetrack.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import lecturetrack.models  # noqa: F401  enregistre tous les modèles dans Base.metadata avant les routers
from lecturetrack.errors import ConflictError, LectureTrackError
from lecturetrack.routers import attendances, lectures, qr_codes, scans
from lecturetrack.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : démarre et arrête le scheduler APScheduler."""
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="LectureTrack API",
    description="API de présence aux cours par QR code à durée et nombre de scans limités",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise tous les ports localhost en développement (à restreindre en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-User-Id", "X-User-Role", "X-User-Name"],
)


app.include_router(lectures.router)
app.include_router(qr_codes.router)
app.include_router(scans.router)
app.include_router(attendances.router)


@app.exception_handler(LectureTrackError)
async def lecturetrack_error_handler(request: Request, exc: LectureTrackError) -> JSONResponse:
    """Convertit les erreurs métier des services en réponse HTTP (code porté par l'exception)."""
    if exc.status_code >= 500:
        logger.error("Erreur de persistance : %s", exc.message)
    detail = exc.message
    if isinstance(exc, ConflictError):
        detail = {"reason": exc.reason, "message": exc.message}
    return JSONResponse(status_code=exc.status_code, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "LectureTrack API", "version": "0.1.0"}
