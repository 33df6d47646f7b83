"""
Pytest configuration and fixtures for the Coupon Ingestion test suite.
"""

import pytest


@pytest.fixture(scope="session")
def django_db_setup(django_db_blocker):
    """Configure the test database and run migrations."""
    from django.core.management import call_command

    with django_db_blocker.unblock():
        call_command("migrate", "--run-syncdb", verbosity=0)


@pytest.fixture
def api_client():
    """Create a test API client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def locale_gb(db):
    from coupons.models import Locale

    return Locale.objects.create(code="en_GB", language_code="en", country_code="GB")


@pytest.fixture
def locale_de(db):
    from coupons.models import Locale

    return Locale.objects.create(code="de_DE", language_code="de", country_code="DE")


@pytest.fixture
def coupon_source(db, locale_gb, locale_de):
    """A registered scraper actor covering one UK and one multi-route domain."""
    from coupons.models import Source

    return Source.objects.create(
        apify_actor_id="actor-123",
        name="Voucher Aggregator",
        domains=[
            {"domain": "vouchers.co.uk", "locales": ["en_GB"]},
            {"domain": "gutscheine.example", "routes": {"/de/": "de_DE"}},
        ],
    )


@pytest.fixture
def processed_run(db):
    """A freshly received, successful run."""
    from coupons.models import ProcessedRun, RunStatus

    return ProcessedRun.objects.create(
        actor_id="actor-123",
        actor_run_id="run-abc",
        dataset_id="dataset-xyz",
        locale_id="en_GB",
        status=RunStatus.SUCCEEDED,
        payload={"eventData": {"actorId": "actor-123", "actorRunId": "run-abc"}},
    )


@pytest.fixture
def raw_item():
    """Factory for raw scraper records."""

    def _make(**overrides):
        item = {
            "merchantName": "Acme",
            "idInSite": "offer-1",
            "sourceUrl": "https://www.vouchers.co.uk/acme.com",
            "title": "10% off everything",
            "code": "SAVE10",
            "isExpired": False,
        }
        item.update(overrides)
        return item

    return _make
