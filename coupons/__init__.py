"""
Coupons Django application.

Receives scraper completion webhooks, ingests the scraped coupon datasets
and reconciles them against the stored coupons.
"""
