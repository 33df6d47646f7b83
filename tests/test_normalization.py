"""
Tests for coupon identity, date parsing and code heuristics.
"""

from datetime import datetime, timezone

import pytest

from coupons.utils import (
    generate_coupon_id,
    get_domain_name,
    is_valid_coupon_code,
    item_signature,
    normalize_string,
    parse_date_or_none,
    should_be_fake,
)


class TestNormalizeString:

    def test_trims_lowercases_and_collapses_whitespace(self):
        assert normalize_string("  Foo   BAR\tBaz ") == "foo bar baz"

    def test_none_and_empty_become_empty_string(self):
        assert normalize_string(None) == ""
        assert normalize_string("") == ""


class TestGetDomainName:

    def test_domain_in_path_wins(self):
        assert get_domain_name("https://www.aggregator.com/store/amazon.de/") == "amazon.de"

    def test_hostname_used_when_path_has_no_domain(self):
        assert get_domain_name("https://www.shop.co.uk/vouchers") == "shop.co.uk"

    def test_no_domain_found(self):
        assert get_domain_name("not a url") == ""
        assert get_domain_name(None) == ""


class TestGenerateCouponId:

    def test_is_case_and_whitespace_insensitive(self):
        a = generate_coupon_id("Acme ", "OFFER-1", "https://www.vouchers.co.uk/acme.com")
        b = generate_coupon_id("acme", "offer-1", "https://vouchers.co.uk/acme.com/")
        assert a == b
        assert len(a) == 64

    def test_different_domain_gives_different_id(self):
        a = generate_coupon_id("Acme", "offer-1", "https://vouchers.co.uk/acme.com")
        b = generate_coupon_id("Acme", "offer-1", "https://vouchers.co.uk/acme.de")
        assert a != b


class TestItemSignature:

    def test_only_identity_fields_count(self, raw_item):
        assert item_signature(raw_item(code="A")) == item_signature(raw_item(code="B"))
        assert item_signature(raw_item(title="x")) != item_signature(raw_item(title="y"))


class TestParseDateOrNone:

    def test_zulu_datetime(self):
        assert parse_date_or_none("2024-05-01T10:00:00Z") == datetime(
            2024, 5, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_plain_date_is_midnight_utc(self):
        assert parse_date_or_none("2024-05-01") == datetime(2024, 5, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "N/A", "2024-13-45", 12345])
    def test_garbage_is_none(self, value):
        assert parse_date_or_none(value) is None


class TestCouponCodes:

    @pytest.mark.parametrize("code", ["SAVE20", "WELCOME-10", "A1 | B2"])
    def test_plausible_codes(self, code):
        assert is_valid_coupon_code(code)
        assert should_be_fake(code) is False

    @pytest.mark.parametrize(
        "code",
        [
            "Sign up for newsletter",
            "X",
            "https://shop.example/deal",
            "A**B",
            "Code wird im Warenkorb abgezogen",
            "CODE1 or register now",
        ],
    )
    def test_implausible_codes(self, code):
        assert not is_valid_coupon_code(code)
        assert should_be_fake(code) is True

    def test_missing_code_is_not_fake(self):
        assert should_be_fake(None) is False
        assert should_be_fake("") is False
