"""
FastAPI application factory for the dashboard service.

Routing:
  • /api/*          : aggregation queries against the store (routers.dashboard)
  • everything else : static dashboard assets (routers.static)

Middleware:
  • Localhost-only CORS: a request carrying an Origin header is refused
    with 403 unless the origin is http(s)://localhost or 127.0.0.1 (any
    port). OPTIONS preflights answer 204 with no body.
"""

import logging
import re
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from gateway_metrics.core.errors import APIError, ForbiddenError
from gateway_metrics.routers.dashboard import router as dashboard_router
from gateway_metrics.routers.static import router as static_router
from gateway_metrics.services.store import MetricsStore

logger = logging.getLogger(__name__)

DEFAULT_DASHBOARD_DIR = Path(__file__).resolve().parent / "dashboard"

_ALLOWED_ORIGIN = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")
_CORS_HEADERS = {
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _render_error(request: Request, exc: APIError) -> Response:
    if request.url.path.startswith("/api/"):
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def create_app(store: MetricsStore, dashboard_dir: str | Path | None = None) -> FastAPI:
    """Build the dashboard app around an already-migrated store."""
    app = FastAPI(
        title="Gateway Usage Metrics",
        version="0.1.0",
        description="Read API over gateway usage rollups.",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    app.state.dashboard_dir = Path(dashboard_dir or DEFAULT_DASHBOARD_DIR).resolve()

    @app.middleware("http")
    async def localhost_cors(request: Request, call_next):  # type: ignore[no-untyped-def]
        origin = request.headers.get("origin")
        if origin and not _ALLOWED_ORIGIN.match(origin):
            logger.warning("Rejected request from origin %s", origin)
            return _render_error(request, ForbiddenError())

        if request.method == "OPTIONS":
            response: Response = Response(status_code=204)
        else:
            response = await call_next(request)

        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers.update(_CORS_HEADERS)
        return response

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> Response:
        return _render_error(request, exc)

    # Order matters: the API router's catch-all must win over static files.
    app.include_router(dashboard_router, prefix="/api")
    app.include_router(static_router)

    return app
