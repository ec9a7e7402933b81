"""
clubhub.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn clubhub.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from clubhub.api.auth import intent_router  # noqa: E402
from clubhub.api.auth import router as auth_router  # noqa: E402
from clubhub.api.deps import get_engine  # noqa: E402
from clubhub.api.middleware import RouteGateMiddleware  # noqa: E402
from clubhub.api.routes.events import router as events_router  # noqa: E402
from clubhub.api.routes.projects import router as projects_router  # noqa: E402
from clubhub.api.routes.public import router as public_router  # noqa: E402
from clubhub.api.routes.recurring import router as recurring_router  # noqa: E402
from clubhub.api.routes.tasks import router as tasks_router  # noqa: E402
from clubhub.api.routes.users import router as users_router  # noqa: E402
from clubhub.errors import ClubError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("ClubHub API started — engine ready (%s)", engine.url.get_backend_name())
    yield
    logger.info("ClubHub API shutting down")


app = FastAPI(
    title="ClubHub API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RouteGateMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ClubError)
async def club_error_handler(request: Request, exc: ClubError) -> JSONResponse:
    logger.info("%s %s → %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(intent_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(recurring_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
