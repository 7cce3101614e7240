# backend/app/core/middleware.py
import logging
import traceback

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import settings

logger = logging.getLogger(__name__)


class ErrorMiddleware(BaseHTTPMiddleware):
    """
    Tüm beklenmeyen hataları tek biçimde döndürür: {"error": ..., "details": ...}
    DEV: details = hata mesajı + stack izi; PROD: sadece genel mesaj.
    CORS header'larını manuel olarak ekler (exception durumunda CORS middleware çalışmayabilir).
    """
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled exception in {request.method} {request.url.path}: {e}", exc_info=True)
            payload = {
                "error": "Internal Server Error",
                "details": "Internal Server Error" if settings.ENV == "prod" else str(e),
            }
            if settings.ENV != "prod":
                payload["stack"] = traceback.format_exc()

            headers = {}
            origin = request.headers.get("origin")
            if origin:
                cors_origins = settings.CORS_ORIGINS
                if origin in cors_origins or "*" in cors_origins:
                    headers["Access-Control-Allow-Origin"] = origin
                    if settings.CORS_ALLOW_CREDENTIALS:
                        headers["Access-Control-Allow-Credentials"] = "true"

            return JSONResponse(payload, status_code=500, headers=headers)
