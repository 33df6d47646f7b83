"""
Coupon ingestion REST API.

- POST /api/v1/webhooks/coupons/ - scraper run completion webhook
- GET  /api/v1/runs/stats/       - per-actor run statistics
"""
