"""
Locale resolution for scraped coupons.

Order of precedence:
1. metadata.verifyLocale on the record (set when the target page's locale
   was verified by hand)
2. the Source domain/route table: the first source domain that appears in
   the page URL as "<domain>/"; when that domain declares routes, the
   first route whose "<domain><route>" prefix appears in the URL wins,
   otherwise the domain's first locale
3. the localeId the webhook was called with

Only locale codes that exist in the Locale table are returned.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class DomainLocales:
    """One entry of a Source's domain table."""

    domain: str
    locales: List[str] = field(default_factory=list)
    routes: Dict[str, str] = field(default_factory=dict)


class LocaleResolver:
    """Resolve coupon locales from record hints and the Source domain table."""

    def __init__(self, domains: Iterable[DomainLocales], known_locales: Set[str]):
        self.domains = list(domains)
        self.known_locales = set(known_locales)

    @classmethod
    def from_db(cls) -> "LocaleResolver":
        """Build a resolver from the active Source rows and Locale table."""
        from coupons.models import Locale, Source

        domains = []
        for source in Source.objects.filter(is_active=True).only("domains"):
            for entry in source.domains or []:
                if not isinstance(entry, dict) or not entry.get("domain"):
                    continue
                domains.append(
                    DomainLocales(
                        domain=entry["domain"],
                        locales=list(entry.get("locales") or []),
                        routes=dict(entry.get("routes") or {}),
                    )
                )

        known = set(Locale.objects.values_list("code", flat=True))
        return cls(domains, known)

    def locale_from_url(self, url: Optional[str]) -> Optional[str]:
        """Look the URL up in the domain/route table."""
        if not url:
            return None

        for entry in self.domains:
            if f"{entry.domain}/" not in url:
                continue

            if entry.routes:
                for route, locale in entry.routes.items():
                    if f"{entry.domain}{route}" in url:
                        return locale
                logger.debug(f"Route not found for url: {url}")
                return None

            return entry.locales[0] if entry.locales else None

        logger.debug(f"Domain not found for url: {url}")
        return None

    def _known(self, code: Optional[str]) -> Optional[str]:
        if code and code in self.known_locales:
            return code
        return None

    def resolve(
        self,
        url: Optional[str],
        verify_locale: Optional[str] = None,
        default: Optional[str] = None,
    ) -> Optional[str]:
        """
        Resolve the locale for a record.

        Args:
            url: Page the record was scraped from
            verify_locale: metadata.verifyLocale from the record
            default: localeId from the webhook call

        Returns:
            A known locale code, or None when nothing resolves
        """
        return (
            self._known(verify_locale)
            or self._known(self.locale_from_url(url))
            or self._known(default)
        )
