"""Bottom-up rollup of child completion into parent progress records."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from .cache import ProgressCache
from .models import ProgressRecord, ProgressStatus, ResourceType, completion_percentage, utc_now
from .protocols import ProgressStore
from .schemas import ProgressUpdate


logger = logging.getLogger(__name__)

StartProgress = Callable[..., Awaitable[ProgressRecord]]


@dataclass(frozen=True)
class RollupLevel:
    """One parent/child step of the fixed hierarchy."""

    child_type: ResourceType
    parent_type: ResourceType
    parent_field: str  # attribute on the child holding the parent's id


MATERIAL_TO_CHAPTER = RollupLevel(ResourceType.MATERIAL, ResourceType.CHAPTER, "chapter_id")
CHAPTER_TO_MODULE = RollupLevel(ResourceType.CHAPTER, ResourceType.MODULE, "module_id")
MODULE_TO_COURSE = RollupLevel(ResourceType.MODULE, ResourceType.COURSE, "course_id")

# Course is handled separately: it is recomputed for every non-course child
CHAINED_LEVELS = (MATERIAL_TO_CHAPTER, CHAPTER_TO_MODULE)


def aggregate_progress(children: Sequence[ProgressRecord]) -> tuple[int, ProgressStatus]:
    """Compute a parent's percent and status from its children.

    No children means not started at 0%, never vacuously complete.
    """
    total = len(children)
    if total == 0:
        return 0, ProgressStatus.NOT_STARTED

    completed = sum(1 for child in children if child.is_completed)
    percent = completion_percentage(completed, total)
    if completed == total:
        return percent, ProgressStatus.COMPLETED
    if completed > 0:
        return percent, ProgressStatus.IN_PROGRESS
    return percent, ProgressStatus.NOT_STARTED


class HierarchyRecalculator:
    """Re-derives parent records from the cache after a child changes.

    Aggregates are recomputed from every cached sibling each time, never
    patched incrementally. Path: material -> chapter -> module -> course.
    """

    def __init__(self, cache: ProgressCache, store: ProgressStore, start: StartProgress) -> None:
        self.cache = cache
        self.store = store
        self._start = start

    async def recalculate_parent_progress(
        self,
        child: ProgressRecord | None,
        *,
        generation: int | None = None,
    ) -> None:
        """Roll ``child`` upward. Best-effort: failures are logged, never raised.

        ``generation`` is the cache generation ``child`` was read or written
        under; once the cache has been cleared past it the rollup stops.
        """
        if child is None or child.resource_type == ResourceType.COURSE:
            return
        if generation is None:
            generation = self.cache.generation
        if not self.cache.is_current(generation):
            logger.debug(f"Skipping rollup of {child.resource_id}: progress was reset")
            return
        try:
            await self._rollup(child, generation)
        except Exception:
            logger.exception(f"Failed to recalculate parent progress for {child.resource_type.value} {child.resource_id}")

    async def _rollup(self, child: ProgressRecord, generation: int) -> None:
        current = child
        for level in CHAINED_LEVELS:
            if current.resource_type != level.child_type:
                continue
            parent_id = getattr(current, level.parent_field)
            if not parent_id:
                break
            parent = await self._recalculate_level(level, parent_id, current, generation)
            if parent is None:
                break
            current = parent

        if child.course_id:
            await self._recalculate_level(MODULE_TO_COURSE, child.course_id, current, generation)

    async def _recalculate_level(
        self,
        level: RollupLevel,
        parent_id: str,
        child: ProgressRecord,
        generation: int,
    ) -> ProgressRecord | None:
        if not self.cache.is_current(generation):
            return None
        siblings = self.cache.children_of(level.parent_field, parent_id, level.child_type)
        if not siblings:
            logger.debug(f"No cached {level.child_type.value} records under {parent_id}, leaving it untouched")
            return None

        percent, status = aggregate_progress(siblings)

        parent = self.cache.get(parent_id)
        if parent is None:
            parent = await self._start(
                parent_id,
                level.parent_type,
                child.course_id,
                module_id=child.module_id if level.parent_type == ResourceType.CHAPTER else None,
            )
            if not self.cache.is_current(generation):
                return None

        if parent.percent_complete == percent and parent.status == status:
            logger.debug(f"{level.parent_type.value} {parent_id} already at {percent}%")
            return parent

        update = ProgressUpdate(
            percent_complete=percent,
            status=status,
            completed_at=utc_now() if status == ProgressStatus.COMPLETED else None,
        )
        if parent.is_synced:
            updated = await self.store.update_progress(parent.progress_id, update)
            updated = updated.with_scope(parent.module_id, parent.chapter_id)
        else:
            updated = parent.model_copy(update={**update.model_dump(exclude_unset=True), "last_updated": utc_now()})

        if not self.cache.put(parent_id, updated, generation=generation):
            return None
        logger.info(f"Recalculated {level.parent_type.value} {parent_id}: {percent}% ({status.value})")
        return updated
