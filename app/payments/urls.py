"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/pi/ - Pi payment callback endpoint

The entry-page alias (/?webhook=pi_callback) is routed by payments.views.index.

Usage:
    # In config/urls.py
    urlpatterns = [
        path("", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.webhooks.views import pi_callback

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/pi/", pi_callback, name="pi_callback"),
]
