"""
Tests for the raw scraper record parser.
"""

from datetime import datetime, timezone

import pytest

from coupons.services.item_parser import MalformedItemError, parse_scraped_item


class TestParseScrapedItem:

    def test_parses_known_fields(self, raw_item):
        item = parse_scraped_item(
            raw_item(
                expiryDateAt="2030-01-01",
                isExclusive=True,
                metadata={"verifyLocale": "en_GB", "targetPageUrl": "https://vouchers.co.uk/acme.com"},
            )
        )

        assert item.merchant_name == "Acme"
        assert item.id_in_site == "offer-1"
        assert item.code == "SAVE10"
        assert item.expiry_date_at == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert item.is_exclusive is True
        assert item.metadata.verify_locale == "en_GB"
        assert item.page_url == "https://vouchers.co.uk/acme.com"

    def test_provided_fields_only_lists_present_keys(self, raw_item):
        item = parse_scraped_item(raw_item())

        assert item.provided_fields == frozenset({"title", "code", "is_expired"})
        assert "description" not in item.provided_fields

    def test_explicit_null_is_provided(self, raw_item):
        item = parse_scraped_item(raw_item(description=None))

        assert "description" in item.provided_fields
        assert item.description is None

    def test_non_boolean_flags_are_ignored(self, raw_item):
        item = parse_scraped_item(raw_item(isExpired="yes", isShown=1))

        assert "is_expired" not in item.provided_fields
        assert "is_shown" not in item.provided_fields

    def test_id_in_site_falls_back_to_title(self, raw_item):
        raw = raw_item()
        del raw["idInSite"]

        assert parse_scraped_item(raw).id_in_site == "10% off everything"

    def test_numeric_id_in_site_is_stringified(self, raw_item):
        assert parse_scraped_item(raw_item(idInSite=42)).id_in_site == "42"

    def test_unknown_keys_are_collected(self, raw_item):
        item = parse_scraped_item(raw_item(rating=5, **{"__url": "x"}))

        assert item.unknown_keys == ["rating"]

    @pytest.mark.parametrize("missing", ["merchantName", "sourceUrl"])
    def test_missing_required_field(self, raw_item, missing):
        raw = raw_item()
        del raw[missing]

        with pytest.raises(MalformedItemError):
            parse_scraped_item(raw)

    def test_missing_id_and_title(self, raw_item):
        raw = raw_item()
        del raw["idInSite"]
        del raw["title"]

        with pytest.raises(MalformedItemError):
            parse_scraped_item(raw)

    @pytest.mark.parametrize("raw", [None, "text", ["list"], 7])
    def test_non_object_record(self, raw):
        with pytest.raises(MalformedItemError):
            parse_scraped_item(raw)

    def test_non_index_sentinel_skips_required_checks(self):
        item = parse_scraped_item(
            {"metadata": {"__isNotIndexPage": True, "targetPageUrl": "https://vouchers.co.uk/x"}}
        )

        assert item.is_not_index_page
        assert item.page_url == "https://vouchers.co.uk/x"
