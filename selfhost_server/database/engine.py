"""
SQLAlchemy engine construction for the service's connection pool.

The pool is bounded to DB_MAX_CONNECTIONS with no overflow. Connections older
than DB_MAX_LIFETIME are recycled by SQLAlchemy itself; connections that sat
idle longer than DB_IDLE_TIMEOUT are discarded on checkout and replaced.
"""

import logging
import time

from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import Engine

from selfhost_server.settings import Settings

logger = logging.getLogger(__name__)

# Not configurable: how long a caller waits for a free connection.
ACQUIRE_TIMEOUT_SECONDS = 30

_LAST_CHECKIN_KEY = 'last_checkin'


def install_idle_timeout(engine: Engine, idle_timeout_seconds: float) -> None:
    """Discard pooled connections that have been idle longer than the timeout."""

    @event.listens_for(engine, 'connect')
    def _reset_idle_clock(dbapi_connection, connection_record):
        connection_record.info.pop(_LAST_CHECKIN_KEY, None)

    @event.listens_for(engine, 'checkin')
    def _record_checkin(dbapi_connection, connection_record):
        if dbapi_connection is not None:
            connection_record.info[_LAST_CHECKIN_KEY] = time.monotonic()

    @event.listens_for(engine, 'checkout')
    def _discard_if_idle(dbapi_connection, connection_record, connection_proxy):
        last_checkin = connection_record.info.get(_LAST_CHECKIN_KEY)
        if last_checkin is None:
            return
        idle_for = time.monotonic() - last_checkin
        if idle_for > idle_timeout_seconds:
            logger.debug(f'Discarding connection idle for {idle_for:.1f}s')
            # The pool invalidates the record and opens a fresh connection.
            raise exc.DisconnectionError('connection exceeded idle timeout')


def build_engine(settings: Settings) -> Engine:
    """Create the bounded engine described by the settings. No I/O happens here."""
    engine = create_engine(
        settings.DATABASE_URL,
        pool_size=settings.DB_MAX_CONNECTIONS,
        max_overflow=0,
        pool_timeout=ACQUIRE_TIMEOUT_SECONDS,
        pool_recycle=settings.max_lifetime.total_seconds(),
    )
    install_idle_timeout(engine, settings.idle_timeout.total_seconds())
    return engine


__all__ = ['ACQUIRE_TIMEOUT_SECONDS', 'build_engine', 'install_idle_timeout']
