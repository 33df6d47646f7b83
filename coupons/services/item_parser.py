"""
Ingestion boundary for raw scraper records.

Roughly eighty scrapers produce records with no shared schema. Records are
parsed here into a ScrapedItem that carries only known fields, so nothing
downstream reads arbitrary JSON keys.

Raw shape (camelCase, all optional unless noted):
    merchantName (required), idInSite (or title), sourceUrl (required),
    title, domain, description, termsAndConditions, code, startDateAt,
    expiryDateAt, isExclusive, isShown, isExpired,
    metadata: {merchantId, verifyLocale, targetPageUrl, __isNotIndexPage}
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from coupons.utils.dates import parse_date_or_none

logger = logging.getLogger(__name__)

# raw key -> model field
TEXT_FIELDS = {
    "title": "title",
    "domain": "domain",
    "description": "description",
    "termsAndConditions": "terms_and_conditions",
    "code": "code",
}
DATE_FIELDS = {
    "startDateAt": "start_date_at",
    "expiryDateAt": "expiry_date_at",
}
BOOLEAN_FIELDS = {
    "isExclusive": "is_exclusive",
    "isShown": "is_shown",
    "isExpired": "is_expired",
}
IDENTITY_FIELDS = {"merchantName", "idInSite", "sourceUrl", "metadata"}

# Keys some scrapers add for their own bookkeeping
IGNORED_KEYS = {"__url", "__id", "#debug", "#error"}

KNOWN_KEYS = (
    set(TEXT_FIELDS) | set(DATE_FIELDS) | set(BOOLEAN_FIELDS) | IDENTITY_FIELDS | IGNORED_KEYS
)


class MalformedItemError(ValueError):
    """A scraper record is missing fields needed to identify the coupon."""


@dataclass
class ItemMetadata:
    """Scraper-side hints carried in the record's metadata object."""

    merchant_id: Optional[str] = None
    verify_locale: Optional[str] = None
    target_page_url: Optional[str] = None
    is_not_index_page: bool = False


@dataclass
class ScrapedItem:
    """
    A validated scraper record.

    provided_fields lists the model fields the record actually carried;
    the upsert patch is limited to those.
    """

    merchant_name: Optional[str]
    id_in_site: Optional[str]
    source_url: Optional[str]
    title: Optional[str] = None
    domain: Optional[str] = None
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    code: Optional[str] = None
    start_date_at: Optional[datetime] = None
    expiry_date_at: Optional[datetime] = None
    is_exclusive: Optional[bool] = None
    is_shown: Optional[bool] = None
    is_expired: Optional[bool] = None
    metadata: ItemMetadata = field(default_factory=ItemMetadata)
    provided_fields: FrozenSet[str] = frozenset()
    unknown_keys: List[str] = field(default_factory=list)

    @property
    def is_not_index_page(self) -> bool:
        return self.metadata.is_not_index_page

    @property
    def page_url(self) -> Optional[str]:
        """The crawled page this record came from."""
        return self.metadata.target_page_url or self.source_url


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_metadata(raw: Any) -> ItemMetadata:
    if not isinstance(raw, dict):
        return ItemMetadata()
    return ItemMetadata(
        merchant_id=_clean_text(raw.get("merchantId")),
        verify_locale=_clean_text(raw.get("verifyLocale")),
        target_page_url=_clean_text(raw.get("targetPageUrl")),
        is_not_index_page=raw.get("__isNotIndexPage") is True,
    )


def parse_scraped_item(raw: Any) -> ScrapedItem:
    """
    Parse one raw record.

    Raises:
        MalformedItemError: the record is not an object, or lacks a merchant
            name, a source URL, or both idInSite and title. Non-index page
            sentinels are exempt from these checks.
    """
    if not isinstance(raw, dict):
        raise MalformedItemError(f"Record is a {type(raw).__name__}, expected an object")

    metadata = _parse_metadata(raw.get("metadata"))
    provided = set()
    values: Dict[str, Any] = {}

    for key, field_name in TEXT_FIELDS.items():
        if key in raw:
            values[field_name] = _clean_text(raw[key])
            provided.add(field_name)

    for key, field_name in DATE_FIELDS.items():
        if key in raw:
            values[field_name] = parse_date_or_none(raw[key])
            provided.add(field_name)

    for key, field_name in BOOLEAN_FIELDS.items():
        # Anything but a real boolean is treated as absent
        if isinstance(raw.get(key), bool):
            values[field_name] = raw[key]
            provided.add(field_name)

    unknown = sorted(str(k) for k in raw.keys() if k not in KNOWN_KEYS)
    if unknown:
        logger.debug(f"Ignoring unrecognised record keys: {', '.join(unknown)}")

    merchant_name = _clean_text(raw.get("merchantName"))
    id_in_site = _clean_text(raw.get("idInSite")) or values.get("title")
    source_url = _clean_text(raw.get("sourceUrl"))

    if not metadata.is_not_index_page:
        if not merchant_name:
            raise MalformedItemError("Missing merchantName")
        if not id_in_site:
            raise MalformedItemError("Missing idInSite and title")
        if not source_url:
            raise MalformedItemError("Missing sourceUrl")

    return ScrapedItem(
        merchant_name=merchant_name,
        id_in_site=id_in_site,
        source_url=source_url,
        metadata=metadata,
        provided_fields=frozenset(provided),
        unknown_keys=unknown,
        **values,
    )
