"""Existence checks used to prevent duplicate progress records."""

import logging

from .cache import ProgressCache
from .models import ProgressRecord, ResourceType
from .protocols import ProgressStore


logger = logging.getLogger(__name__)


class ExistenceResolver:
    """Find an existing record, cache first, remote second.

    Remote failures propagate: reporting "not found" when the store could not
    be asked is what creates duplicates.
    """

    def __init__(self, cache: ProgressCache, store: ProgressStore) -> None:
        self.cache = cache
        self.store = store

    async def find_existing(
        self,
        user_id: str,
        resource_id: str,
        resource_type: ResourceType | None = None,
        *,
        generation: int | None = None,
    ) -> ProgressRecord | None:
        """Return the user's record for ``resource_id`` or None.

        A match fetched after the cache was cleared past ``generation`` (the
        current one by default) is returned but not cached.
        """
        if generation is None:
            generation = self.cache.generation
        cached = self.cache.get(resource_id)
        if cached is not None:
            logger.debug(f"Found progress for {resource_id} in cache")
            return cached

        filters: dict[str, str | None] = {"userId": user_id}
        if resource_type is not None:
            filters["resourceType"] = resource_type.value
            # The store indexes materials by materialId
            if resource_type == ResourceType.MATERIAL:
                filters["materialId"] = resource_id
            else:
                filters["resourceId"] = resource_id
        else:
            filters["resourceId"] = resource_id

        records = await self.store.list_progress(**filters)
        for record in records:
            if record.user_id != user_id or not record.matches(resource_id):
                continue
            if resource_type is not None and record.resource_type != resource_type:
                continue
            # Key by the id the caller asked about so later lookups hit
            self.cache.put(resource_id, record, generation=generation)
            logger.debug(f"Found existing progress {record.progress_id} for {resource_id} remotely")
            return record

        logger.debug(f"No existing progress for {resource_id}")
        return None
