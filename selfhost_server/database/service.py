import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import text

from selfhost_server.settings import Settings
from selfhost_server.utils.exceptions import (
    AcquireTimeoutError,
    ConnectFailedError,
    PoolClosedError,
    ProbeFailedError,
)

from .engine import build_engine

logger = logging.getLogger(__name__)

# How long close() waits for in-flight connections before disposing the pool.
CLOSE_GRACE_PERIOD_SECONDS = 10.0


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time view of the connection pool."""

    # Live connections, checked in plus checked out
    size: int
    idle: int
    checked_out: int
    max_size: int
    closed: bool

    def as_dict(self) -> dict[str, Any]:
        """Render the snapshot with the field names used in health responses."""
        return {
            'pool_size': self.size,
            'idle_connections': self.idle,
            'checked_out': self.checked_out,
            'max_connections': self.max_size,
            'is_closed': self.closed,
        }


class DatabaseService:
    """Owns the shared connection pool used by the health checks.

    One instance is created at startup and shared by every request handler.
    It is safe to use from several threads; closing it is final.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._cond = threading.Condition()
        self._closed = False
        self._disposed = False
        self._in_flight = 0

    @classmethod
    def open(cls, settings: Settings) -> 'DatabaseService':
        """Build the pool and make one connection to prove the database is reachable.

        Raises:
            ConnectFailedError: the engine could not be built or the first
                connection failed. Not retried.
        """
        try:
            engine = build_engine(settings)
        except (sa_exc.SQLAlchemyError, ImportError, ValueError) as e:
            raise ConnectFailedError(e) from e

        try:
            with engine.connect():
                pass
        except sa_exc.SQLAlchemyError as e:
            engine.dispose()
            raise ConnectFailedError(e) from e

        logger.info(
            f'Database pool created with {settings.DB_MAX_CONNECTIONS} max connections '
            f'({engine.url.render_as_string(hide_password=True)})'
        )
        return cls(engine)

    @property
    def is_closed(self) -> bool:
        with self._cond:
            return self._closed

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Check out a pooled connection for the duration of the block.

        Raises:
            PoolClosedError: close() has been called.
            AcquireTimeoutError: no connection became free in time.
        """
        with self._cond:
            if self._closed:
                raise PoolClosedError()
            self._in_flight += 1

        try:
            try:
                conn = self._engine.connect()
            except sa_exc.TimeoutError as e:
                raise AcquireTimeoutError(self._engine.pool.timeout(), e) from e
            with conn:
                yield conn
        finally:
            with self._cond:
                self._in_flight -= 1
                self._cond.notify_all()

    def probe(self) -> None:
        """Check out a connection and run a trivial round-trip query.

        Raises:
            PoolClosedError: close() has been called.
            AcquireTimeoutError: no connection became free in time.
            ProbeFailedError: connecting or querying failed.
        """
        try:
            with self.connect() as conn:
                conn.execute(text('SELECT 1'))
        except sa_exc.SQLAlchemyError as e:
            raise ProbeFailedError(e) from e

        logger.debug('Database health check passed')

    def stats(self) -> PoolStats:
        """Best-effort snapshot of the pool counters; never blocks on I/O."""
        pool = self._engine.pool
        idle = pool.checkedin()
        checked_out = pool.checkedout()
        return PoolStats(
            size=idle + checked_out,
            idle=idle,
            checked_out=checked_out,
            max_size=pool.size(),
            closed=self.is_closed,
        )

    def close(self, grace_period: float = CLOSE_GRACE_PERIOD_SECONDS) -> None:
        """Stop handing out connections and release the pool.

        Waits up to grace_period seconds for in-flight connections to be
        returned, then disposes of every pooled connection. Later calls wait
        for that disposal to finish and change nothing.
        """
        with self._cond:
            if self._closed:
                self._cond.wait_for(lambda: self._disposed)
                return
            self._closed = True
            drained = self._cond.wait_for(
                lambda: self._in_flight == 0, timeout=grace_period
            )

        if not drained:
            logger.warning(
                f'Closing database pool with connections still in use after {grace_period}s'
            )
        try:
            self._engine.dispose()
        finally:
            with self._cond:
                self._disposed = True
                self._cond.notify_all()
        logger.info('Database pool closed')
