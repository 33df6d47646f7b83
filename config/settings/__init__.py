"""
Settings loader for the Coupon Ingestion Service.

DJANGO_ENV selects the module: "production", "test" or (default)
"development".
"""

import os

env = os.getenv("DJANGO_ENV", "development")

if env == "production":
    from .production import *
elif env == "test":
    from .test import *
else:
    from .development import *
