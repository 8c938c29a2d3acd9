"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks.
"""

from django.core.cache import cache
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Sessions, payment slots and locks all live in the cache, so the cache is
    the one component whose failure makes the service unusable.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - cache: "connected" or "disconnected"

    HTTP Status Codes:
        200: All systems operational
        503: Cache unavailable

    Example Response:
        {
            "status": "healthy",
            "cache": "connected"
        }
    """
    health_status = {
        "status": "healthy",
        "cache": "unknown",
    }

    try:
        cache.set("health_check", "ok", timeout=1)
        if cache.get("health_check") == "ok":
            health_status["cache"] = "connected"
        else:
            health_status["cache"] = "disconnected"
    except Exception:
        health_status["cache"] = "disconnected"

    if health_status["cache"] != "connected":
        health_status["status"] = "unhealthy"

    status_code = 200 if health_status["status"] == "healthy" else 503

    return JsonResponse(health_status, status=status_code)
