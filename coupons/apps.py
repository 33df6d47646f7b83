"""
Coupons application configuration.
"""

from django.apps import AppConfig


class CouponsConfig(AppConfig):
    """Configuration for the coupon ingestion Django application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "coupons"
    verbose_name = "Coupon Ingestion"
