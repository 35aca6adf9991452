"""Main entry point for the Quandary application."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from quandary.api.v1 import (
    chat_router,
    questions_router,
    realtime_router,
    users_router,
    votes_router,
)
from quandary.core.errors import QuandaryError
from quandary.core.logging import configure_logging
from quandary.core.settings import settings
from quandary.db.session import SessionLocal, create_tables
from quandary.services import PresenceRegistry, RealtimeGateway, RoomBroadcaster

configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title=f"{settings.app_name} API",
    description="Would-you-rather voting with live question rooms",
    version="1.0.0",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(questions_router, prefix="/api/v1")
app.include_router(votes_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(chat_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")

# Realtime state lives for the lifetime of the process.
presence_registry = PresenceRegistry()
app.state.presence = presence_registry
app.state.broadcaster = RoomBroadcaster(
    presence_registry, send_timeout=settings.broadcast_send_timeout_seconds
)
app.state.realtime = RealtimeGateway(presence_registry, app.state.broadcaster, SessionLocal)


@app.exception_handler(QuandaryError)
async def quandary_error_handler(request: Request, exc: QuandaryError) -> JSONResponse:
    """Render domain errors as ``{"detail": message}`` with their status code."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": f"{settings.app_name} API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quandary.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
