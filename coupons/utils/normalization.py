"""
Coupon identity and normalization utilities.

The coupon primary key is a content hash, so every producer of the same
offer must arrive at the same string before hashing:

    sha256(normalize(merchant_name) | normalize(id_in_site) | normalize(domain))

where domain is the merchant domain derived from the page the offer was
scraped from (see get_domain_name).
"""

import hashlib
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_string(value: Optional[str]) -> str:
    """
    Trim, lowercase and collapse internal whitespace runs to one space.

    Example:
        >>> normalize_string("  Foo   BAR\\tBaz ")
        'foo bar baz'
    """
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).strip().lower())


def get_domain_name(url: Optional[str]) -> str:
    """
    Derive the merchant domain from a scraped page URL.

    Aggregator sites often put the merchant domain in the path
    (https://aggregator.com/store/amazon.com); when the last path segment
    looks like a domain it wins over the host name. A leading "www." is
    removed. Returns "" when nothing domain-like is found.

    Example:
        >>> get_domain_name("https://www.aggregator.com/store/amazon.de/")
        'amazon.de'
        >>> get_domain_name("https://www.shop.co.uk/vouchers")
        'shop.co.uk'
    """
    if not url:
        return ""

    try:
        parsed = urlparse(url)
        hostname = parsed.hostname or ""
    except ValueError:
        return ""

    path = parsed.path or ""
    if path.endswith("/"):
        path = path[:-1]

    if "." not in path and "." in hostname:
        domain = hostname
    else:
        domain = path.split("/")[-1]

    if domain.startswith("www."):
        domain = domain[4:]

    return domain if "." in domain else ""


def generate_coupon_id(
    merchant_name: Optional[str],
    id_in_site: Optional[str],
    source_url: Optional[str],
) -> str:
    """
    Compute the deterministic coupon identifier.

    Equal (case/whitespace-insensitive) merchant names, site ids and
    source domains always yield the same 64-char hex digest, which is
    what makes repeated ingestion of the same dataset idempotent.
    """
    domain = get_domain_name(source_url)
    combined = "|".join(
        [
            normalize_string(merchant_name),
            normalize_string(id_in_site),
            normalize_string(domain),
        ]
    )
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def item_signature(item: Dict[str, Any]) -> str:
    """
    Signature of a raw scraper record, used to drop exact repeats in a dataset.

    Built from title, idInSite, sourceUrl, merchantName and domain as they
    appear in the record (no normalization: only byte-identical repeats are
    duplicates here).
    """
    parts = [
        item.get("title"),
        item.get("idInSite"),
        item.get("sourceUrl"),
        item.get("merchantName"),
        item.get("domain"),
    ]
    key = "".join("" if part is None else str(part) for part in parts)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
