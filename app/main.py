# app/main.py
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI

from app.api.routes import attendance_tracker, health, meetings, webhooks, zoom
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import init_db_for_startup
from app.realtime.server import sio

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    await init_db_for_startup()
    logger.info("Database schema ready")
    yield


def create_app() -> FastAPI:
    """
    Application factory for the attendance tracker service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend service that ingests Zoom meeting webhooks, tracks every\n"
            "participant's join/leave sessions, computes attendance percentages and\n"
            "statuses, and pushes live updates to dashboards over Socket.IO."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Routers
    app.include_router(health.router)
    app.include_router(meetings.router)
    app.include_router(zoom.router)
    app.include_router(attendance_tracker.router)
    app.include_router(webhooks.router)

    return app


app = create_app()

# Entry point for uvicorn: Socket.IO traffic on /socket.io, everything else to FastAPI.
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
