# backend/app/main.py
import os
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.middleware import ErrorMiddleware
from .core.logging_config import setup_logging
from .db.database import connect_all, db, disconnect_all
from .db.schema import create_tables, seed_default_commands
from .services.voice import AuthResolutionError

# Setup logging first, before anything else
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_logs=settings.ENV == "prod"
)
logger = logging.getLogger(__name__)
logger.info(f"[STARTUP] Application starting in {settings.ENV} mode")

# Routers
from .routers.system import router as system_router    # /health, /version
from .routers.voice import router as voice_router      # /voice/*
from .core.observability import RequestIdAndRateLimitMiddleware

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV != "prod" else None,
    redoc_url="/redoc" if settings.ENV != "prod" else None,
)

# ---- CORS ----
# Middleware'ler ters sırada çalışır: son eklenen ilk çalışır
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# ---- Hata Yakalama Orta Katmanı ----
app.add_middleware(ErrorMiddleware)


@app.exception_handler(AuthResolutionError)
async def auth_resolution_handler(request: Request, exc: AuthResolutionError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Unauthorized" if exc.status_code == 401 else "Not Found", "details": str(exc)},
        headers={"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None,
    )


# ---- DB Yaşam Döngüsü ----
@app.on_event("startup")
async def on_startup():
    logger.info("[STARTUP] Connecting to database...")
    await connect_all()
    logger.info("[STARTUP] Database connected, creating tables...")
    try:
        await create_tables(db)
        seeded = await seed_default_commands(db)
        logger.info(f"[STARTUP] Tables ready, {seeded} default voice commands seeded")
    except Exception as e:
        logger.error(f"[STARTUP] Error creating tables: {e}", exc_info=True)

    if not settings.OPENAI_API_KEY:
        logger.warning("[STARTUP] OPENAI_API_KEY is not set; /voice/command transcription will fail")

    logger.info("[STARTUP] Application startup completed successfully")


@app.on_event("shutdown")
async def on_shutdown():
    await disconnect_all()
    logger.info("[SHUTDOWN] Database disconnected")


# ---- Router Kayıtları ----
app.include_router(system_router)      # /health, /version
app.include_router(voice_router)       # /voice/command, /voice/text, /voice/commands, /voice/logs, /voice/stats

# ---- Observability ----
app.add_middleware(RequestIdAndRateLimitMiddleware)


# ---- Root kısa bilgi ----
@app.get("/")
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "env": settings.ENV,
        "docs": "/docs",
        "health": "/health",
    }
