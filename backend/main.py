# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
User Manager API.

    uvicorn main:app --app-dir backend

Routers: /auth (login, refresh, me, change-password) and /users
(administration).  /health answers liveness probes without touching the
database.

CORS origins come from ``settings.cors_origins``; the default only admits the
local development frontend.
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from auth.router import router as auth_router
from users.router import router as users_router
from core.config import settings
from core.logger import logger
from core.security import get_client_ip

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("User Manager starting: token ttl access=%dm refresh=%dd",
                settings.access_token_expire_minutes, settings.refresh_token_expire_days)
    yield
    logger.info("User Manager shutting down")


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """
    One log line per request: request id, method, path, client IP, status and
    latency.  Bodies are never logged; they carry passwords and tokens.

    The caller's X-Request-ID is reused when present, otherwise one is minted,
    and it is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        logger.info(
            "[%s] %s %s | client=%s status=%d latency=%.1fms",
            request_id,
            request.method,
            request.url.path,
            get_client_ip(request),
            response.status_code,
            elapsed_ms,
        )
        return response


app = FastAPI(title="User Manager", version="1.0.0", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
)
app.add_middleware(_RequestLogMiddleware)

app.include_router(auth_router)
app.include_router(users_router)


@app.get("/health")
def health():
    return {"status": "ok"}
