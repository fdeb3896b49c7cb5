"""
FastAPI application setup for the cc-mob gateway.

This module wires the registry, credential store, rate limiters and the
real-time channel together and sets up routes.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import Settings
from ..connection_logger import ConnectionLogger
from ..credentials import CredentialManager
from ..fanout import FanoutChannel
from ..rate_limit import SlidingWindowLimiter
from ..registry import RequestRegistry
from .auth import is_authenticated
from .errors import http_exception_handler, validation_exception_handler
from .limits import client_source
from .routes import main_router


def create_app(
    settings: Optional[Settings] = None,
    credentials: Optional[CredentialManager] = None,
) -> FastAPI:
    """Create the gateway app. Credentials are loaded eagerly so a broken store fails at startup."""
    if settings is None:
        settings = Settings.from_env()
    if credentials is None:
        credentials = CredentialManager(settings.env_path)
    credentials.current_token()

    registry = RequestRegistry(expiry=settings.expiry, sweep_interval=settings.sweep_interval)
    limiters = {
        "api": SlidingWindowLimiter(settings.api_rate_limit, settings.rate_window),
        "create": SlidingWindowLimiter(settings.create_rate_limit, settings.rate_window),
        "ws": SlidingWindowLimiter(settings.ws_rate_limit, settings.rate_window),
    }
    connection_logger = ConnectionLogger(log_dir=settings.config_dir)
    fanout = FanoutChannel(
        snapshot=registry.pending_list,
        authenticate=is_authenticated,
        limiter=limiters["ws"],
        keepalive_interval=settings.keepalive_interval,
        max_message_bytes=settings.max_ws_message_bytes,
        logger=connection_logger,
        source_of=client_source,
    )
    registry.add_listener(fanout.on_resolved)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        registry.start()
        fanout.start()
        print(f"[Server] Sweep every {settings.sweep_interval}s, keepalive every {settings.keepalive_interval}s")
        try:
            yield
        finally:
            await fanout.stop()
            await registry.stop()
            print("[Server] Stopped")

    # Create the FastAPI app
    app = FastAPI(
        title="cc-mob",
        description="Relay between a coding agent and a human on their phone",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.credentials = credentials
    app.state.registry = registry
    app.state.limiters = limiters
    app.state.connection_logger = connection_logger
    app.state.fanout = fanout

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include main router (all routes)
    app.include_router(main_router)
    return app


def run_server(settings: Settings, app: Optional[FastAPI] = None):
    """Run the FastAPI server."""
    import uvicorn
    if app is None:
        app = create_app(settings)
    print(f"\n[Server] Starting cc-mob on http://{settings.bind_host}:{settings.port}")
    uvicorn.run(app, host=settings.bind_host, port=settings.port, log_level="warning")
