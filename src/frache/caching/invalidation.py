"""
Cache invalidation for Frache.

Tags are not indexed separately. Membership is recovered by scanning the
metadata records in a namespace and reading each record's tag list, so an
invalidation costs O(metadata keys in scope). A tag written while a scan is
in progress may be missed by that scan.
"""

import json
import time
from typing import AsyncIterator, Iterable, List, Optional, Set

from redis.asyncio import Redis

from ..config import CacheSettings
from ..logging_config import get_logger
from ..metrics_collector import get_metrics_collector
from .keys import (
    KEY_DELIMITER,
    META_SUFFIX,
    build_scan_pattern,
    is_meta_key,
    meta_key,
    primary_key,
)
from .serialization import ensure_str

TAGS_FIELD = "tags"


def parse_tags(raw: Optional[str]) -> List[str]:
    """Decode the JSON tag list stored in a metadata record."""
    if not raw:
        return []
    tags = json.loads(raw)
    if not isinstance(tags, list):
        raise ValueError("tag list must be a JSON array")
    return [str(tag) for tag in tags]


class CacheInvalidator:
    """Pattern and tag based deletion over cursor-driven SCAN pages."""

    def __init__(self, redis_client: Redis, settings: CacheSettings):
        self.redis_client = redis_client
        self.settings = settings
        self.logger = get_logger(__name__, 'cache_invalidator')
        self.metrics = get_metrics_collector()

        self.stats = {
            'pattern_invalidations': 0,
            'tag_invalidations': 0,
            'keys_scanned': 0,
            'keys_invalidated': 0,
            'total_processing_time': 0.0
        }

    async def scan_pages(self, pattern: str) -> AsyncIterator[List[str]]:
        """Yield the keys matching pattern one SCAN page at a time."""
        cursor = 0
        while True:
            cursor, keys = await self.redis_client.scan(
                cursor=cursor, match=pattern, count=self.settings.scan_count
            )
            if keys:
                page = [ensure_str(key) for key in keys]
                self.stats['keys_scanned'] += len(page)
                yield page
            if int(cursor) == 0:
                break

    async def delete_by_pattern(self, pattern: str) -> int:
        """
        Delete every key matching pattern together with its pair record.

        Returns:
            Number of store keys removed
        """
        start_time = time.perf_counter()
        found: Set[str] = set()

        async for page in self.scan_pages(pattern):
            for key in page:
                found.add(key)
                # primary and metadata records are always removed together
                found.add(primary_key(key) if is_meta_key(key) else meta_key(key))

        removed = await self._delete_keys(found)

        self.stats['pattern_invalidations'] += 1
        self._record(removed, start_time)
        self.logger.debug(
            f"Invalidated {removed} keys matching {pattern}",
            operation="delete_by_pattern",
            pattern=pattern
        )
        return removed

    async def clear_by_tags(self, tags: Iterable[str], namespace: Optional[str] = None) -> int:
        """
        Delete every entry in a namespace whose tags intersect `tags`.

        Each metadata record is read once; the matching primary and metadata
        keys are removed with a single DEL after the scan completes.

        Returns:
            Number of store keys removed (up to twice the entries invalidated)
        """
        wanted = set(tags)
        if not wanted:
            return 0

        start_time = time.perf_counter()
        namespace = namespace or self.settings.default_namespace
        pattern = build_scan_pattern(
            f"*{KEY_DELIMITER}{META_SUFFIX}", namespace, self.settings.key_prefix
        )
        to_delete: Set[str] = set()

        async for page in self.scan_pages(pattern):
            async with self.redis_client.pipeline(transaction=False) as pipe:
                for key in page:
                    pipe.hget(key, TAGS_FIELD)
                raw_tags = await pipe.execute(raise_on_error=False)

            for key, raw in zip(page, raw_tags):
                if isinstance(raw, Exception):
                    # not a metadata hash, e.g. a key written outside Frache
                    self.logger.warning(
                        f"Skipping {key} during tag clear: {raw}",
                        operation="clear_by_tags"
                    )
                    continue
                try:
                    entry_tags = parse_tags(ensure_str(raw))
                except ValueError:
                    self.logger.warning(
                        f"Ignoring unreadable tag list on {key}",
                        operation="clear_by_tags"
                    )
                    continue
                if wanted.intersection(entry_tags):
                    to_delete.add(key)
                    to_delete.add(primary_key(key))

        removed = await self._delete_keys(to_delete)

        self.stats['tag_invalidations'] += 1
        self._record(removed, start_time)
        self.logger.info(
            f"Invalidated {removed} keys for tags {sorted(wanted)}",
            operation="clear_by_tags",
            namespace=namespace
        )
        return removed

    async def _delete_keys(self, keys: Set[str]) -> int:
        if not keys:
            return 0
        return int(await self.redis_client.delete(*sorted(keys)))

    def _record(self, removed: int, start_time: float) -> None:
        self.stats['keys_invalidated'] += removed
        self.stats['total_processing_time'] += time.perf_counter() - start_time
        if removed:
            self.metrics.get_counter(
                'frache_invalidated_keys_total', 'Store keys removed by invalidation'
            ).increment(removed)

    def get_stats(self):
        return dict(self.stats)
