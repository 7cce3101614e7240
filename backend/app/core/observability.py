# backend/app/core/observability.py
import time
import uuid
import logging
from collections import deque, defaultdict
from typing import Deque, Dict
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from .config import settings

logger = logging.getLogger("voice.observability")


class RequestIdAndRateLimitMiddleware(BaseHTTPMiddleware):
    """
    - Her isteğe X-Request-ID atar (gelen header varsa onu kullanır, response'a yazar)
    - Basit IP rate limit uygular (RATE_LIMIT_PER_MINUTE, 0 = kapalı)
    - Süre, durum, yol bilgisi loglar
    """
    def __init__(self, app, limit: int = None):
        super().__init__(app)
        self.window_seconds = 60
        self.limit = int(settings.RATE_LIMIT_PER_MINUTE if limit is None else limit)
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _headers(self, req_id: str):
        return {"X-Request-ID": req_id} if settings.ADD_REQUEST_ID_HEADER else None

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()

        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = req_id

        client_ip = request.client.host if request.client else "unknown"

        # --- Rate limit ---
        now = time.time()
        q = self.hits[client_ip]
        # pencere dışındakileri düş
        while q and now - q[0] > self.window_seconds:
            q.popleft()
        if self.limit > 0 and len(q) >= self.limit:
            return JSONResponse(
                status_code=429,
                content={"error": "Too Many Requests", "details": f"limit {self.limit}/min", "request_id": req_id},
                headers=self._headers(req_id),
            )
        q.append(now)

        if settings.REQUEST_LOG_ENABLED:
            logger.info(f"[IN ] {req_id} {request.method} {request.url.path} from {client_ip}")

        try:
            response: Response = await call_next(request)
        except Exception as e:
            logger.exception(f"[ERR] {req_id} {request.method} {request.url.path} {type(e).__name__}: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "details": str(e), "request_id": req_id},
                headers=self._headers(req_id),
            )

        if settings.ADD_REQUEST_ID_HEADER:
            response.headers["X-Request-ID"] = req_id

        if settings.REQUEST_LOG_ENABLED:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.info(
                f"[OUT] {req_id} {request.method} {request.url.path} "
                f"-> {response.status_code} in {duration_ms}ms"
            )

        return response
