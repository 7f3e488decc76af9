from typing import Optional
import logging

from app.core.cache import CacheManager
from app.core.cache_config import INVALIDATION_PATTERNS

logger = logging.getLogger(__name__)

class CacheService:

    @staticmethod
    async def _invalidate_patterns(cache: CacheManager, patterns: list) -> int:
        total = 0
        for pattern in patterns:
            if "*" in pattern:
                deleted = await cache.delete_pattern(pattern)
            else:
                deleted = await cache.delete(pattern)
            total += deleted
            logger.info(f"Invalidated {deleted} cache entries for pattern {pattern}")
        return total

    @staticmethod
    async def invalidate_product_cache(cache: CacheManager, event: str, product_id: Optional[int] = None) -> int:
        """Drop every listing entry, plus the single-product entry when an id is given."""
        patterns = [
            pattern.format(product_id)
            for pattern in INVALIDATION_PATTERNS[event]
            if product_id is not None or "{}" not in pattern
        ]
        return await CacheService._invalidate_patterns(cache, patterns)

cache_service = CacheService()
