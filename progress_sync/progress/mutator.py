"""State-changing progress operations."""

import asyncio
import logging
from collections.abc import Callable

from progress_sync.exceptions import (
    InvalidArgumentError,
    ProgressNotFoundError,
    ProgressSyncError,
    UnauthenticatedError,
)

from .cache import ProgressCache
from .guard import InFlightGuard
from .hierarchy import HierarchyRecalculator
from .models import (
    ProgressRecord,
    ProgressStatus,
    ResourceType,
    clamp_percentage,
    derive_status,
    utc_now,
)
from .protocols import ProgressStore
from .resolver import ExistenceResolver
from .schemas import ProgressCreate, ProgressUpdate


logger = logging.getLogger(__name__)


class ProgressMutator:
    """Start, update, complete, toggle and delete progress records.

    Every operation reads the user id and cached records at call time. Remote
    failures while starting degrade to a local-only record; remote failures
    on later mutations propagate and leave the cache as it was.
    """

    def __init__(
        self,
        cache: ProgressCache,
        store: ProgressStore,
        user_id_provider: Callable[[], str | None],
        *,
        resolver: ExistenceResolver | None = None,
        guard: InFlightGuard | None = None,
    ) -> None:
        self.cache = cache
        self.store = store
        self.resolver = resolver or ExistenceResolver(cache, store)
        self.guard = guard or InFlightGuard()
        self.recalculator = HierarchyRecalculator(cache, store, start=self.start_resource_progress)
        self._user_id_provider = user_id_provider

    # === Start ===

    async def start_resource_progress(
        self,
        resource_id: str,
        resource_type: ResourceType | str,
        course_id: str,
        module_id: str | None = None,
        chapter_id: str | None = None,
    ) -> ProgressRecord:
        """Return the record for a resource, creating it if none exists.

        Concurrent calls for the same resource share a single create.
        """
        user_id = self._require_user_id()
        if not resource_id or not resource_type or not course_id:
            msg = (
                f"Missing required parameters: resource_id={resource_id!r}, "
                f"resource_type={resource_type!r}, course_id={course_id!r}"
            )
            raise InvalidArgumentError(msg)
        resource_type = self._coerce_type(resource_type)
        generation = self.cache.generation

        while True:
            owned = self.guard.try_acquire(resource_id)
            if owned is not None:
                break
            try:
                shared = await self.guard.wait_for(resource_id)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if task is not None and task.cancelling():
                    raise
                if not self.cache.is_current(generation):
                    msg = "Progress session was reset while the start was in flight"
                    raise UnauthenticatedError(msg) from None
                logger.debug(f"Start for {resource_id} was abandoned by its owner, retrying")
                continue
            if shared is not None:
                return shared

        record: ProgressRecord | None = None
        error: Exception | None = None
        try:
            record = await self._start(user_id, resource_id, resource_type, course_id, module_id, chapter_id, generation)
            return record
        except Exception as e:
            error = e
            raise
        finally:
            self.guard.release(resource_id, owned, record=record, error=error)

    async def _start(
        self,
        user_id: str,
        resource_id: str,
        resource_type: ResourceType,
        course_id: str,
        module_id: str | None,
        chapter_id: str | None,
        generation: int,
    ) -> ProgressRecord:
        try:
            existing = await self.resolver.find_existing(user_id, resource_id, resource_type, generation=generation)
        except ProgressSyncError as e:
            # Unknown remote state: creating now could duplicate a record
            logger.warning(f"Existence check for {resource_id} failed ({e.message}), tracking locally")
            return self._local_fallback(
                user_id, resource_id, resource_type, course_id, module_id, chapter_id, generation
            )

        if existing is not None:
            logger.debug(f"Progress already exists for {resource_id}, not creating a new record")
            return existing

        payload = ProgressCreate(
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            course_id=course_id,
            module_id=module_id,
            chapter_id=chapter_id,
            material_id=resource_id if resource_type == ResourceType.MATERIAL else None,
            percent_complete=0,
            status=ProgressStatus.IN_PROGRESS,
            started_at=utc_now(),
        )
        try:
            record = await self.store.create_progress(payload)
        except ProgressSyncError as e:
            logger.warning(f"Creating progress for {resource_id} failed ({e.message}), tracking locally")
            return self._local_fallback(
                user_id, resource_id, resource_type, course_id, module_id, chapter_id, generation
            )

        record = record.with_scope(module_id, chapter_id)
        self.cache.put(resource_id, record, generation=generation)
        logger.info(f"Started progress for {resource_type.value} {resource_id}")
        return record

    def _local_fallback(
        self,
        user_id: str,
        resource_id: str,
        resource_type: ResourceType,
        course_id: str,
        module_id: str | None,
        chapter_id: str | None,
        generation: int,
    ) -> ProgressRecord:
        now = utc_now()
        record = ProgressRecord(
            user_id=user_id,
            resource_id=resource_id,
            resource_type=resource_type,
            course_id=course_id,
            module_id=module_id,
            chapter_id=chapter_id,
            material_id=resource_id if resource_type == ResourceType.MATERIAL else None,
            percent_complete=0,
            status=ProgressStatus.IN_PROGRESS,
            started_at=now,
            last_updated=now,
            is_local_only=True,
        )
        self.cache.put(resource_id, record, generation=generation)
        return record

    # === Mutations ===

    async def update_resource_progress(self, resource_id: str, percent_complete: float) -> ProgressRecord:
        """Set a started resource's percentage."""
        generation = self.cache.generation
        current = self.cache.get(resource_id)
        if current is None:
            msg = "Progress record not found. Start progress first."
            raise ProgressNotFoundError(msg, payload={"resourceId": resource_id})

        percent = clamp_percentage(percent_complete)
        status = derive_status(percent)
        update = ProgressUpdate(
            percent_complete=percent,
            status=status,
            completed_at=utc_now() if percent == 100 else None,
        )
        updated = await self._apply(resource_id, current, update, generation)
        logger.info(f"Updated progress for {resource_id}: {updated.percent_complete}%")

        # Reaching 100% or dropping out of completed both move the parent
        if updated.percent_complete == 100 or current.is_completed:
            await self.recalculator.recalculate_parent_progress(updated, generation=generation)
        return updated

    async def mark_resource_completed(self, resource_id_or_progress_id: str) -> ProgressRecord:
        """Complete a resource given its resource id or its progress id."""
        update = ProgressUpdate(
            percent_complete=100,
            status=ProgressStatus.COMPLETED,
            completed_at=utc_now(),
        )
        generation = self.cache.generation
        resource_id, current = self._resolve_target(resource_id_or_progress_id)
        if current is not None:
            updated = await self._apply(resource_id, current, update, generation)
        else:
            # Not cached anywhere: the caller handed us a server id
            updated = await self.store.update_progress(resource_id_or_progress_id, update)
            self.cache.put(updated.resource_id, updated, generation=generation)

        logger.info(f"Marked {updated.resource_type.value} {updated.resource_id} as completed")
        await self.recalculator.recalculate_parent_progress(updated, generation=generation)
        return updated

    async def toggle_resource_completion(self, resource_id_or_progress_id: str) -> ProgressRecord:
        """Flip between (0, not_started) and (100, completed)."""
        generation = self.cache.generation
        resource_id, current = self._resolve_target(resource_id_or_progress_id)
        if current is None:
            current = await self.store.get_progress(resource_id_or_progress_id)
            if current is None:
                raise ProgressNotFoundError(payload={"progressId": resource_id_or_progress_id})
            resource_id = current.resource_id

        if current.is_completed:
            update = ProgressUpdate(percent_complete=0, status=ProgressStatus.NOT_STARTED, completed_at=None)
        else:
            update = ProgressUpdate(percent_complete=100, status=ProgressStatus.COMPLETED, completed_at=utc_now())

        updated = await self._apply(resource_id, current, update, generation)
        logger.info(f"Toggled {resource_id} -> {updated.status.value}")
        await self.recalculator.recalculate_parent_progress(updated, generation=generation)
        return updated

    async def delete_resource_progress(self, resource_id_or_progress_id: str) -> None:
        """Delete a record remotely and drop it from the cache."""
        generation = self.cache.generation
        resource_id, current = self._resolve_target(resource_id_or_progress_id)
        if current is not None and not current.is_synced:
            self.cache.remove(resource_id)
            return

        progress_id = current.progress_id if current is not None else resource_id_or_progress_id
        await self.store.delete_progress(progress_id)
        if resource_id is not None:
            self.cache.remove(resource_id, generation=generation)

    # === Helpers ===

    async def _apply(
        self,
        resource_id: str,
        current: ProgressRecord,
        update: ProgressUpdate,
        generation: int,
    ) -> ProgressRecord:
        if not current.is_synced:
            # Local-only records never reached the server; change them in place
            changes = update.model_dump(exclude_unset=True)
            record = current.model_copy(update={**changes, "last_updated": utc_now()})
            self.cache.put(resource_id, record, generation=generation)
            return record

        updated = await self.store.update_progress(current.progress_id, update)
        updated = updated.with_scope(current.module_id, current.chapter_id)
        self.cache.put(resource_id, updated, generation=generation)
        return updated

    def _resolve_target(self, key: str) -> tuple[str | None, ProgressRecord | None]:
        current = self.cache.get(key)
        if current is not None:
            return key, current
        entry = self.cache.find_by_progress_id(key)
        if entry is not None:
            return entry
        return None, None

    def _require_user_id(self) -> str:
        user_id = self._user_id_provider()
        if not user_id:
            raise UnauthenticatedError
        return user_id

    @staticmethod
    def _coerce_type(resource_type: ResourceType | str) -> ResourceType:
        try:
            return ResourceType(resource_type)
        except ValueError as e:
            allowed = ", ".join(t.value for t in ResourceType)
            msg = f"resource_type must be one of: {allowed}"
            raise InvalidArgumentError(msg) from e
