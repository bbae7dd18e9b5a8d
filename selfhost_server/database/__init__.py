"""
Database package: connection pool construction and health probing.
"""

from .engine import ACQUIRE_TIMEOUT_SECONDS, build_engine
from .service import DatabaseService, PoolStats

__all__ = ['ACQUIRE_TIMEOUT_SECONDS', 'DatabaseService', 'PoolStats', 'build_engine']
