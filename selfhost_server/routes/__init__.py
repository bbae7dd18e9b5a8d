"""
Routes package for the service.
"""

from .health import health_router

__all__ = ['health_router']
