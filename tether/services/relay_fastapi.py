"""
Tether FastAPI Service

Serves the session relay: create a session, post JSON messages with the
write key, poll for them with the read key.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request

from tether import __version__
from tether.api.endpoints import sessions_router
from tether.config.logging_config import configure_logging, generate_trace_id, trace_context
from tether.config.settings import Settings, get_settings
from tether.exceptions.handlers import setup_error_handlers
from tether.middleware import RelayCORSMiddleware
from tether.sessions import SessionRegistry
from tether.storage import SessionStore, create_session_store

# Standard logger configuration
logger = logging.getLogger('tether.fastapi')


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    clock: Callable[[], float] = time.time,
    configure_logs: bool = True
) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Configuration (defaults to the global settings)
        store: Backing store (defaults to the one selected by settings)
        clock: Time source for expiry and timestamps
        configure_logs: Install the configured log handlers on startup

    Returns:
        FastAPI application with state attached as ``app.state``
    """
    if settings is None:
        settings = get_settings()
    if store is None:
        store = create_session_store(settings.store)

    app = FastAPI(
        title="Tether Relay API",
        description="Ephemeral capability-keyed message relay sessions",
        version=__version__,
        docs_url="/docs" if settings.api.docs_enabled else None,
        redoc_url="/redoc" if settings.api.docs_enabled else None,
        openapi_url="/openapi.json" if settings.api.docs_enabled else None,
        redirect_slashes=False
    )

    app.state.settings = settings
    app.state.store = store
    app.state.registry = SessionRegistry(store, settings.relay, clock=clock)
    app.state.startup_time = time.time()

    # Add trace ID middleware
    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        """Middleware to handle trace ID generation and header management"""
        trace_id = request.headers.get('X-Trace-ID', generate_trace_id())

        with trace_context(trace_id):
            response = await call_next(request)
            response.headers['X-Trace-ID'] = trace_id
            return response

    # CORS wraps everything else so that every response carries its headers
    app.add_middleware(RelayCORSMiddleware, allowed_origins=settings.api.allowed_origin_list)

    setup_error_handlers(app)
    app.include_router(sessions_router)

    @app.on_event("startup")
    async def startup_event():
        """Initialize application on startup"""
        if configure_logs:
            configure_logging(
                level=settings.logging.log_level,
                format_type=settings.logging.log_format,
                output=settings.logging.log_output
            )

        logger.info(f"Starting {settings.service.service_name} relay service (environment={settings.environment})...")
        logger.info(
            f"Relay limits: ttl={settings.relay.session_ttl}s, "
            f"max_messages={settings.relay.max_messages}, "
            f"max_body_bytes={settings.relay.max_body_bytes}"
        )

        await app.state.store.connect()
        await app.state.registry.start()

        logger.info(f"{settings.service.service_name} relay service started successfully")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info(f"Shutting down {settings.service.service_name} relay service...")

        await app.state.registry.shutdown()
        await app.state.store.close()

        uptime = time.time() - app.state.startup_time
        logger.info(f"{settings.service.service_name} relay service shutdown complete after {uptime:.0f}s")

    return app


app = create_app()


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api.host, port=settings.api.port)


if __name__ == "__main__":
    main()
