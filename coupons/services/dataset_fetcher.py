"""
Dataset Fetcher.

Pulls the scraped records of a finished run and collapses exact repeats.
A transport failure never raises: it yields an empty, not-ok FetchResult
and the periodic retry sweep replays the run later.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from coupons.services.apify_client import ApifyClient, ApifyClientError
from coupons.utils.normalization import item_signature

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of fetching one dataset."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    ok: bool = True
    raw_count: int = 0
    duplicate_count: int = 0
    error: Optional[str] = None
    # Position of each kept item in the fetched dataset
    positions: List[int] = field(default_factory=list)

    @classmethod
    def no_data(cls, error: str) -> "FetchResult":
        return cls(items=[], ok=False, error=error)


def dedupe_items(items: List[Any]) -> Tuple[List[Any], List[int]]:
    """
    Keep the first occurrence of each record signature, preserving order.

    Returns the kept items and their positions in the input. Non-dict
    entries are passed through untouched so the parser can report them as
    malformed at their position.
    """
    seen = set()
    unique = []
    positions = []
    for position, item in enumerate(items):
        if isinstance(item, dict):
            key = item_signature(item)
            if key in seen:
                continue
            seen.add(key)
        unique.append(item)
        positions.append(position)
    return unique, positions


def remove_duplicate_items(items: List[Any]) -> List[Any]:
    return dedupe_items(items)[0]


class DatasetFetcher:
    """Fetches and deduplicates scraper datasets."""

    def __init__(self, client: Optional[ApifyClient] = None):
        self.client = client or ApifyClient()

    async def fetch_async(self, dataset_id: str) -> FetchResult:
        try:
            payload = await self.client.get_dataset_items(dataset_id)
        except ApifyClientError as e:
            logger.error(f"Failed to fetch dataset {dataset_id}: {e}")
            return FetchResult.no_data(str(e))

        if not isinstance(payload, list):
            logger.error(
                f"Dataset {dataset_id} returned {type(payload).__name__} instead of a list"
            )
            return FetchResult.no_data(f"Unexpected payload type: {type(payload).__name__}")

        unique, positions = dedupe_items(payload)
        duplicate_count = len(payload) - len(unique)

        if duplicate_count:
            logger.info(f"Dataset {dataset_id}: dropped {duplicate_count} duplicate items")

        return FetchResult(
            items=unique,
            ok=True,
            raw_count=len(payload),
            duplicate_count=duplicate_count,
            positions=positions,
        )

    def fetch(self, dataset_id: str) -> FetchResult:
        """Synchronous wrapper for worker code."""
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(self.fetch_async(dataset_id))
        finally:
            loop.close()
