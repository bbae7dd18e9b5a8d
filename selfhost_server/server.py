"""
FastAPI server exposing liveness and database readiness checks.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

import sentry_sdk
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.concurrency import run_in_threadpool

from selfhost_server import SERVICE_NAME, __version__
from selfhost_server.database import DatabaseService
from selfhost_server.routes import health_router
from selfhost_server.settings import Settings, load_settings
from selfhost_server.utils.exceptions import ConfigError, ConnectFailedError
from selfhost_server.utils.log_setup import setup_logging

logger = logging.getLogger(__name__)


def init_sentry(settings: Settings) -> bool:
    """Enable Sentry error reporting when a DSN is configured."""
    if not settings.API_SENTRY_DSN:
        logger.info('API_SENTRY_DSN not set. Sentry is disabled.')
        return False

    sentry_sdk.init(
        dsn=settings.API_SENTRY_DSN,
        integrations=[
            FastApiIntegration(),
            AsyncioIntegration(),
        ],
        # Errors only, no performance tracing
        traces_sample_rate=0.0,
        profiles_sample_rate=0.0,
        environment=settings.ENVIRONMENT,
    )
    logger.info('Sentry initialized for backend')
    return True


def create_app(settings: Settings, database: DatabaseService) -> FastAPI:
    """Build the application around an already opened database pool.

    The pool is closed when the application shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f'{SERVICE_NAME} {__version__} started')
        yield
        logger.info('Shutting down: closing database pool')
        await run_in_threadpool(database.close)

    app = FastAPI(
        title=SERVICE_NAME,
        description='Self-hosted service with liveness and database health checks',
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    @app.middleware('http')
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f'{request.method} {request.url.path} -> {response.status_code} '
            f'({elapsed_ms:.1f}ms)'
        )
        return response

    @app.exception_handler(status.HTTP_404_NOT_FOUND)
    async def not_found_handler(request: Request, exc: Exception):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                'error': 'Not Found',
                'message': 'The requested resource was not found',
            },
        )

    app.include_router(health_router)

    @app.get('/')
    async def root():
        """Service identification and the available endpoints."""
        return {
            'service': SERVICE_NAME,
            'version': __version__,
            'description': 'Self-hosted HTTP server with database health checks',
            'endpoints': ['/', '/health', '/healthz', '/health/db'],
        }

    return app


def main() -> int:
    """Run the server until SIGINT/SIGTERM. Returns the process exit code."""
    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging()
        logger.error(f'Invalid configuration: {e}')
        return 1

    setup_logging(settings.LOG_LEVEL)
    init_sentry(settings)

    try:
        database = DatabaseService.open(settings)
    except ConnectFailedError as e:
        logger.error(str(e))
        return 1

    app = create_app(settings, database)

    # uvicorn owns signal handling: it stops accepting connections, waits for
    # in-flight requests up to the grace period, then runs the lifespan shutdown.
    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        timeout_graceful_shutdown=settings.SHUTDOWN_GRACE_PERIOD_SECONDS,
        log_config=None,
    )
    server = uvicorn.Server(config)

    logger.info(f'Starting server on {settings.HOST}:{settings.PORT}')
    logger.info(f'Health check available at http://{settings.HOST}:{settings.PORT}/healthz')
    try:
        server.run()
    finally:
        database.close()

    logger.info('Server stopped')
    return 0


if __name__ == '__main__':
    sys.exit(main())
