"""
Coupon Upsert Engine.

For each parsed scraper record:
1. derive the content-hash id
2. lock-or-create the coupon row (native atomic create-or-update)
3. merge the allow-listed fields the record carried (CouponPatch)
4. apply archive transitions (expired / unexpired / removed-and-back)
5. fill in locale and merchant linkage when still unset
6. classify the write as created, updated, archived or unarchived

Archive transitions:
    active  -> archived(expired)     incoming isExpired=true
    expired -> active(unexpired)     incoming isExpired=false, or the title
                                     changed on an expired coupon
    removed -> active(unexpired)     seen again without isExpired=true
    manual  -> (untouched)           never reversed by ingestion
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterator, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError, transaction
from django.utils import timezone

from coupons.models import ArchiveReason, Coupon, Merchant, Source
from coupons.services.item_parser import ScrapedItem
from coupons.services.locale_resolver import LocaleResolver
from coupons.utils.coupon_codes import should_be_fake
from coupons.utils.normalization import generate_coupon_id

logger = logging.getLogger(__name__)

# Every field a scraper record can ever write; the configured allow-list
# must be a subset of these.
PATCHABLE_FIELDS = (
    "domain",
    "title",
    "description",
    "terms_and_conditions",
    "expiry_date_at",
    "start_date_at",
    "code",
    "is_shown",
    "is_expired",
    "is_exclusive",
)


@dataclass(frozen=True)
class UpsertConfig:
    """Upsert Engine configuration."""

    updatable_fields: FrozenSet[str] = frozenset(PATCHABLE_FIELDS)

    def __post_init__(self):
        unknown = set(self.updatable_fields) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ImproperlyConfigured(
                f"COUPON_UPDATABLE_FIELDS contains unsupported fields: {sorted(unknown)}"
            )

    @classmethod
    def from_settings(cls) -> "UpsertConfig":
        fields = getattr(settings, "COUPON_UPDATABLE_FIELDS", PATCHABLE_FIELDS)
        return cls(updatable_fields=frozenset(fields))


@dataclass(frozen=True)
class CouponPatch:
    """
    Field values a record may write onto a coupon.

    Only names in `present` are applied; the rest are placeholders.
    """

    domain: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    expiry_date_at: Optional[datetime] = None
    start_date_at: Optional[datetime] = None
    code: Optional[str] = None
    is_shown: Optional[bool] = None
    is_expired: Optional[bool] = None
    is_exclusive: Optional[bool] = None
    present: FrozenSet[str] = frozenset()

    def items(self) -> Iterator[Tuple[str, Any]]:
        for name in PATCHABLE_FIELDS:
            if name in self.present:
                yield name, getattr(self, name)

    def __contains__(self, name: str) -> bool:
        return name in self.present


def build_patch(item: ScrapedItem, config: UpsertConfig) -> CouponPatch:
    """Map a ScrapedItem onto a CouponPatch limited to allowed, provided fields."""
    present = frozenset(
        name
        for name in PATCHABLE_FIELDS
        if name in config.updatable_fields and name in item.provided_fields
    )
    return CouponPatch(
        domain=item.domain,
        title=item.title,
        description=item.description,
        terms_and_conditions=item.terms_and_conditions,
        expiry_date_at=item.expiry_date_at,
        start_date_at=item.start_date_at,
        code=item.code,
        is_shown=item.is_shown,
        is_expired=item.is_expired,
        is_exclusive=item.is_exclusive,
        present=present,
    )


class UpsertOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"


class ArchiveTransition(enum.Enum):
    NONE = "none"
    ARCHIVE_EXPIRED = "archive_expired"
    UNARCHIVE = "unarchive"


@dataclass(frozen=True)
class CouponSnapshot:
    """The archive-relevant state of a coupon before a write."""

    archived_at: Optional[datetime]
    archived_reason: Optional[str]
    is_expired: Optional[bool]
    title: Optional[str]

    @classmethod
    def of(cls, coupon: Coupon) -> "CouponSnapshot":
        return cls(
            archived_at=coupon.archived_at,
            archived_reason=coupon.archived_reason,
            is_expired=coupon.is_expired,
            title=coupon.title,
        )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


@dataclass(frozen=True)
class UpsertResult:
    coupon_id: str
    outcome: UpsertOutcome
    locale_missing: bool = False


def title_changed(old: Optional[str], new: Optional[str]) -> bool:
    """A non-empty incoming title that differs from the stored one after trimming."""
    if not new or not new.strip() or old is None:
        return False
    return old.strip() != new.strip()


def resolve_archive_transition(
    existing: Optional[CouponSnapshot], patch: CouponPatch
) -> ArchiveTransition:
    """Decide the archive transition for one record against the prior state."""
    incoming_expired = patch.is_expired if "is_expired" in patch else None

    if existing is not None and existing.archived_reason == ArchiveReason.MANUAL and existing.is_archived:
        return ArchiveTransition.NONE

    if incoming_expired is True:
        return ArchiveTransition.ARCHIVE_EXPIRED

    if existing is None:
        return ArchiveTransition.NONE

    if existing.is_expired is True:
        if incoming_expired is False:
            return ArchiveTransition.UNARCHIVE
        # TODO: confirm with product whether a retitled expired offer should
        # really come back; it may only paper over one aggregator's id reuse.
        if "title" in patch and title_changed(existing.title, patch.title):
            return ArchiveTransition.UNARCHIVE

    if existing.is_archived and existing.archived_reason == ArchiveReason.REMOVED:
        return ArchiveTransition.UNARCHIVE

    return ArchiveTransition.NONE


def classify_outcome(existing: Optional[CouponSnapshot], coupon: Coupon) -> UpsertOutcome:
    if existing is None:
        return UpsertOutcome.CREATED
    now_archived = coupon.archived_at is not None
    if not existing.is_archived and now_archived:
        return UpsertOutcome.ARCHIVED
    if existing.is_archived and not now_archived:
        return UpsertOutcome.UNARCHIVED
    return UpsertOutcome.UPDATED


class CouponUpsertEngine:
    """
    Create-or-update coupons from parsed scraper records.

    One call handles one record inside its own transaction; callers are
    expected to process a run's records sequentially.
    """

    def __init__(
        self,
        config: Optional[UpsertConfig] = None,
        locale_resolver: Optional[LocaleResolver] = None,
    ):
        self.config = config or UpsertConfig.from_settings()
        self.locale_resolver = locale_resolver
        self._merchant_cache: Dict[str, Optional[Merchant]] = {}

    def _resolve_locale(self, item: ScrapedItem, default_locale_id: Optional[str]) -> Optional[str]:
        if self.locale_resolver is None:
            self.locale_resolver = LocaleResolver.from_db()
        return self.locale_resolver.resolve(
            item.page_url,
            verify_locale=item.metadata.verify_locale,
            default=default_locale_id,
        )

    def _resolve_merchant(self, merchant_id: Optional[str]) -> Optional[Merchant]:
        if not merchant_id:
            return None
        if merchant_id not in self._merchant_cache:
            try:
                self._merchant_cache[merchant_id] = Merchant.objects.filter(
                    id=uuid.UUID(merchant_id)
                ).first()
            except ValueError:
                logger.debug(f"Ignoring malformed merchantId {merchant_id}")
                self._merchant_cache[merchant_id] = None
        return self._merchant_cache[merchant_id]

    @staticmethod
    def _apply_transition(coupon: Coupon, existing: Optional[CouponSnapshot], transition, now) -> None:
        if transition is ArchiveTransition.ARCHIVE_EXPIRED:
            # Keep the original stamp so replays converge
            coupon.archived_at = existing.archived_at if existing and existing.archived_at else now
            coupon.archived_reason = ArchiveReason.EXPIRED
            coupon.is_expired = True
            coupon.is_shown = False
        elif transition is ArchiveTransition.UNARCHIVE:
            coupon.archived_at = None
            coupon.archived_reason = ArchiveReason.UNEXPIRED
            coupon.is_expired = False
            coupon.is_shown = True

    def upsert(
        self,
        item: ScrapedItem,
        *,
        actor_id: str,
        source: Optional[Source] = None,
        default_locale_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UpsertResult:
        """
        Apply one record.

        Args:
            item: Parsed scraper record
            actor_id: Scraper actor id of the run
            source: Source row for the actor, if registered
            default_locale_id: localeId the webhook was called with
            now: Sighting time (defaults to timezone.now())

        Returns:
            UpsertResult with the coupon id and outcome bucket
        """
        now = now or timezone.now()
        coupon_id = generate_coupon_id(item.merchant_name, item.id_in_site, item.source_url)
        patch = build_patch(item, self.config)

        try:
            result = self._write(coupon_id, item, patch, actor_id, source, default_locale_id, now)
        except IntegrityError:
            # Another run inserted the same id between lookup and insert
            logger.debug(f"Concurrent insert of coupon {coupon_id}, retrying as update")
            result = self._write(coupon_id, item, patch, actor_id, source, default_locale_id, now)

        if result.locale_missing:
            logger.info(f"No locale resolved for coupon {coupon_id} ({item.source_url})")

        return result

    def _write(
        self,
        coupon_id: str,
        item: ScrapedItem,
        patch: CouponPatch,
        actor_id: str,
        source: Optional[Source],
        default_locale_id: Optional[str],
        now: datetime,
    ) -> UpsertResult:
        with transaction.atomic():
            coupon = Coupon.objects.select_for_update().filter(pk=coupon_id).first()
            existing = CouponSnapshot.of(coupon) if coupon is not None else None

            if coupon is None:
                coupon = Coupon(
                    id=coupon_id,
                    source=source,
                    apify_actor_id=actor_id,
                    id_in_site=item.id_in_site,
                    merchant_name=item.merchant_name,
                    source_url=item.source_url,
                    first_seen_at=now,
                    created_at=now,
                )

            for name, value in patch.items():
                setattr(coupon, name, value)

            if "code" in patch or existing is None:
                coupon.should_be_fake = should_be_fake(coupon.code)

            coupon.last_seen_at = now
            coupon.last_crawled_at = now

            transition = resolve_archive_transition(existing, patch)
            self._apply_transition(coupon, existing, transition, now)

            if existing is not None and existing.archived_reason == ArchiveReason.MANUAL and existing.is_archived:
                coupon.is_shown = False

            locale_missing = False
            if coupon.locale_id is None:
                locale_id = self._resolve_locale(item, default_locale_id)
                if locale_id:
                    coupon.locale_id = locale_id
                else:
                    locale_missing = True

            if coupon.merchant_id is None:
                merchant = self._resolve_merchant(item.metadata.merchant_id)
                if merchant is not None:
                    coupon.merchant = merchant

            if existing is None:
                coupon.save(force_insert=True)
            else:
                coupon.save()

        return UpsertResult(
            coupon_id=coupon_id,
            outcome=classify_outcome(existing, coupon),
            locale_missing=locale_missing,
        )
