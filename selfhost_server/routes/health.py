"""
Liveness and database readiness endpoints.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from selfhost_server import SERVICE_NAME, __version__
from selfhost_server.database import DatabaseService
from selfhost_server.utils.exceptions import PoolError

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=['Health'])


def get_database(request: Request) -> DatabaseService:
    return request.app.state.database


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get('/health')
@health_router.get('/healthz')
async def health():
    """Report that the process is up. Never touches the database."""
    logger.debug('Health check requested')
    return {
        'status': 'healthy',
        'service': SERVICE_NAME,
        'version': __version__,
        'timestamp': _timestamp(),
    }


@health_router.get('/health/db')
def database_health(database: DatabaseService = Depends(get_database)):
    """Probe the database through the shared pool and report pool status."""
    try:
        database.probe()
    except PoolError as e:
        logger.warning(f'Database health check failed: {e}')
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                'status': 'unhealthy',
                'error': str(e),
                'error_type': type(e).__name__,
                **database.stats().as_dict(),
                'timestamp': _timestamp(),
            },
        )

    return {
        'status': 'healthy',
        **database.stats().as_dict(),
        'timestamp': _timestamp(),
    }
