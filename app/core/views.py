"""
Infrastructure endpoints that sit outside the gateway domain.
"""

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Liveness/readiness check for load balancers and container orchestration.

    The database is required; the cache only degrades the report because
    nothing in the gateway depends on it for correctness.

    Returns:
        200 with {"status": "healthy", ...} or 503 when the database is down.
    """
    report = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
    }

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        report["database"] = "connected"
    except DatabaseError:
        logger.exception("Health check database query failed")
        report["database"] = "disconnected"
        report["status"] = "unhealthy"

    cache.set("health_check", "ok", timeout=1)
    report["cache"] = "connected" if cache.get("health_check") == "ok" else "disconnected"

    return JsonResponse(report, status=200 if report["status"] == "healthy" else 503)
