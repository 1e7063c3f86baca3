"""
Celery tasks package.

- cleanup_tasks: scheduled purge of expired codes, rate-limit buckets and refresh tokens
"""

from auth_service.tasks import cleanup_tasks

__all__ = ["cleanup_tasks"]
