"""
URL configuration for the coupon ingestion API.
"""

from django.urls import path

from coupons.api.views import coupon_webhook, run_stats

app_name = 'coupons_api'

urlpatterns = [
    path('webhooks/coupons/', coupon_webhook, name='coupon_webhook'),
    path('runs/stats/', run_stats, name='run_stats'),
]
