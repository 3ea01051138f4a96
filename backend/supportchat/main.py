"""
FastAPI application entry point for the support chat service.

This module initializes the FastAPI app with middleware, CORS, logging,
selects the chat store once at startup, and registers all API routers.
"""

import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from slowapi.errors import RateLimitExceeded

from supportchat import __version__
from supportchat.config import settings
from supportchat.core.limiter import limiter
from supportchat.core.logging import setup_logging
from supportchat.dependencies import resolve_websocket_user
from supportchat.realtime.protocol import ChatProtocolEngine
from supportchat.realtime.registry import SessionRegistry
from supportchat.routers import auth, chats, ws
from supportchat.services.completion_service import CompletionService
from supportchat.storage import create_storage

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info("Selecting chat storage...")
    storage = create_storage(settings)
    logger.info(f"Chat storage ready: {storage.name}")

    app.state.storage = storage
    app.state.registry = SessionRegistry()
    app.state.engine = ChatProtocolEngine(
        storage=storage,
        completion=CompletionService.from_settings(settings),
        registry=app.state.registry,
        authenticator=resolve_websocket_user,
        reply_delay=settings.reply_delay_range,
    )

    yield

    # Shutdown
    logger.info("Shutting down application...")


# Create FastAPI app
app = FastAPI(
    title="Support Chat API",
    description="Real-time customer support chat with an AI assistant",
    version=__version__,
    lifespan=lifespan,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": "Rate limit exceeded. Please try again later."},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal Server Error"},
    )


@app.middleware("http")
async def log_api_requests(request: Request, call_next):
    """Log method, path, status and duration of every /api request."""
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} in {duration_ms:.0f}ms"
        )
    return response


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add GZip compression
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Register routers
app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(chats.router, prefix="/api/chats", tags=["chats"])
app.include_router(ws.router, tags=["realtime"])


@app.get("/")
async def root():
    """Root endpoint for health check."""
    return {"message": "Support Chat API", "status": "running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    storage = getattr(app.state, "storage", None)
    return {"status": "healthy", "storage": storage.name if storage else None}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supportchat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
