"""
URL configuration for the Coupon Ingestion Service.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/4.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path, include

from coupons.views import health_check

urlpatterns = [
    path("admin/", admin.site.urls),

    # Health check (no auth required for load balancer checks)
    path("api/health/", health_check, name="health-check"),

    # Webhook and run statistics API
    path("api/v1/", include("coupons.api.urls")),
]
