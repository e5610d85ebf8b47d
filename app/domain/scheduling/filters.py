"""
Persisted schedule filters

ScheduleFilters is read and written only here, at the edge; the view
functions receive it as an explicit argument.
"""

import logging

from pydantic import ValidationError as PydanticValidationError

from ...cache import Cache, build_filters_key
from ...config import FILTERS_CACHE_TTL
from .schemas import FILTERS_VERSION, ScheduleFilters

logger = logging.getLogger(__name__)


class FilterStore:
    """Load/save a user's ScheduleFilters in Redis"""

    def __init__(self, cache: Cache, ttl: int = FILTERS_CACHE_TTL):
        self.cache = cache
        self.ttl = ttl

    def load(self, user_key: str) -> ScheduleFilters:
        stored = self.cache.get(build_filters_key(user_key))
        if stored is None:
            return ScheduleFilters()
        try:
            filters = ScheduleFilters.model_validate(stored)
        except PydanticValidationError as e:
            logger.warning(f"⚠️ Discarding unreadable filters for {user_key}: {e}")
            return ScheduleFilters()
        if filters.version != FILTERS_VERSION:
            logger.info(
                f"Discarding filters for {user_key}: version {filters.version} != {FILTERS_VERSION}"
            )
            return ScheduleFilters()
        return filters

    def save(self, user_key: str, filters: ScheduleFilters) -> ScheduleFilters:
        filters = filters.model_copy(update={"version": FILTERS_VERSION})
        if not self.cache.set(build_filters_key(user_key), filters.model_dump(), self.ttl):
            logger.warning(f"⚠️ Filters for {user_key} not persisted (cache unavailable)")
        return filters

    def clear(self, user_key: str) -> None:
        self.cache.delete(build_filters_key(user_key))
