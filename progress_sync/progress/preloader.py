"""One-round-trip preload of a user's progress before seeding a view."""

import logging
from collections.abc import Sequence

from progress_sync.exceptions import ProgressSyncError

from .cache import ProgressCache
from .models import CandidateResource, ProgressRecord, ResourceType
from .protocols import ProgressStore


logger = logging.getLogger(__name__)


class BulkPreloader:
    """Seed the cache with a user's existing records in a single list call."""

    def __init__(self, cache: ProgressCache, store: ProgressStore) -> None:
        self.cache = cache
        self.store = store

    async def preload(self, user_id: str, candidates: Sequence[CandidateResource]) -> list[CandidateResource]:
        """Cache existing records for ``candidates`` and return those still lacking one."""
        if not user_id or not candidates:
            return list(candidates)

        generation = self.cache.generation
        try:
            records = await self.store.list_progress(userId=user_id)
        except ProgressSyncError as e:
            # Every residual start still runs its own existence check
            logger.warning(f"Failed to preload progress for user {user_id}: {e.message}")
            return list(candidates)

        lookup: dict[tuple[str, ResourceType], ProgressRecord] = {}
        for record in records:
            if record.user_id != user_id:
                continue
            lookup.setdefault((record.resource_id, record.resource_type), record)
            if record.material_id:
                lookup.setdefault((record.material_id, record.resource_type), record)

        found: dict[str, ProgressRecord] = {}
        residual: list[CandidateResource] = []
        for candidate in candidates:
            record = lookup.get((candidate.id, candidate.resource_type))
            if record is None:
                residual.append(candidate)
            else:
                found[candidate.id] = record

        for resource_id, record in found.items():
            self.cache.put(resource_id, record, generation=generation)

        logger.info(f"Preloaded {len(found)} of {len(candidates)} progress records; {len(residual)} need starting")
        return residual
