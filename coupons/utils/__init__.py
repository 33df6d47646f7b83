"""
Utility functions for the coupons application.

- normalization.py: identity hash, domain derivation, record signatures
- dates.py: lenient ISO date parsing
- coupon_codes.py: coupon code plausibility heuristic
"""

from .normalization import (
    normalize_string,
    get_domain_name,
    generate_coupon_id,
    item_signature,
)
from .dates import parse_date_or_none
from .coupon_codes import is_valid_coupon_code, should_be_fake

__all__ = [
    "normalize_string",
    "get_domain_name",
    "generate_coupon_id",
    "item_signature",
    "parse_date_or_none",
    "is_valid_coupon_code",
    "should_be_fake",
]
