from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.errors import error_response, register_error_handlers
from app.core.logging import configure_logging
from app.db.session import database_ready
from app.middleware.rate_limit import SlidingWindowRateLimiter


configure_logging()

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse, version="0.1.0")
app.state.ai_rate_limiter = SlidingWindowRateLimiter(
    settings.ai_rate_limit_requests,
    settings.ai_rate_limit_window_seconds,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
register_error_handlers(app)

app.include_router(api_router, prefix=settings.api_prefix)

Instrumentator().instrument(app).expose(app)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/ready")
async def ready():
    if not await database_ready():
        return error_response(503, "Database is not connected. Please try again in a moment.")
    return {"status": "ok"}
