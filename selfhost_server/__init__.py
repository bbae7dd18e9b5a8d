"""
Self-hosted HTTP service with liveness and database readiness checks.
"""

SERVICE_NAME = 'selfhost-server'
__version__ = '0.1.0'
