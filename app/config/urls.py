"""
URL configuration for the Pi testnet cashout demo.

URL Structure:
    /                              - Demo entry point (forms + JSON state)
        ?page=dashboard|cashout|webhook|sdk
        ?webhook=pi_callback       - Pi callback (POST, same as below)
    /webhooks/pi/                  - Pi callback endpoint (POST)
    /health/                       - Health check endpoint (for load balancers, Docker)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.urls import include, path

from core.views import health_check
from payments.views import index

urlpatterns = [
    # Demo entry point
    path("", index, name="index"),
    # Pi webhooks
    path("", include("payments.urls")),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
]
