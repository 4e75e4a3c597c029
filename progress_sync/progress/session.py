"""Session-scoped progress engine root.

A ``ProgressSession`` owns the cache, the in-flight guard and the store for
one signed-in user. It is constructed explicitly by the application and
passed to whatever needs progress; ``reset()`` wipes it on logout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import MutableMapping, Sequence
from dataclasses import dataclass
from datetime import datetime

import httpx

from progress_sync.config.settings import Settings, get_settings
from progress_sync.exceptions import ProgressNotFoundError, ProgressSyncError

from .cache import ProgressCache
from .client import ProgressClient
from .guard import InFlightGuard
from .identity import IdentitySnapshot, resolve_effective_user_id
from .models import CandidateResource, ProgressRecord, ProgressStatus, ResourceType, utc_now
from .mutator import ProgressMutator
from .optimistic import FailurePolicy, MutationResult, apply_mutation
from .preloader import BulkPreloader
from .protocols import ProgressStore
from .resolver import ExistenceResolver
from .schemas import ProgressHealth
from .stats import ProgressStats, compute_progress_stats


logger = logging.getLogger(__name__)


@dataclass
class ApiStatus:
    """Last known reachability of the progress store."""

    is_connected: bool = False
    last_check: datetime | None = None
    error: str | None = None

    def mark(self, error: str | None = None) -> None:
        self.is_connected = error is None
        self.last_check = utc_now()
        self.error = error


class ProgressSession:
    """Progress state and operations for the signed-in user."""

    def __init__(
        self,
        store: ProgressStore,
        *,
        settings: Settings | None = None,
        identity: IdentitySnapshot | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.cache = ProgressCache()
        self.guard = InFlightGuard()
        self.resolver = ExistenceResolver(self.cache, store)
        self.mutator = ProgressMutator(
            self.cache,
            store,
            self.effective_user_id,
            resolver=self.resolver,
            guard=self.guard,
        )
        self.preloader = BulkPreloader(self.cache, store)
        self.api_status = ApiStatus()
        self._identity = identity

    @classmethod
    def connect(
        cls,
        settings: Settings | None = None,
        *,
        identity: IdentitySnapshot | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ProgressSession:
        """Build a session talking HTTP to the configured progress store."""
        settings = settings or get_settings()
        client = ProgressClient.from_settings(settings, transport=transport)
        return cls(client, settings=settings, identity=identity)

    async def aclose(self) -> None:
        if isinstance(self.store, ProgressClient):
            await self.store.aclose()

    async def __aenter__(self) -> ProgressSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # === Identity & lifecycle ===

    def effective_user_id(self) -> str | None:
        return resolve_effective_user_id(self._identity)

    def sign_in(self, identity: IdentitySnapshot) -> None:
        """Attach a user; state of a different previous user is dropped first."""
        previous = self.effective_user_id()
        if previous is not None and previous != resolve_effective_user_id(identity):
            self.reset()
        self._identity = identity

    def sign_out(self) -> None:
        self.reset()
        self._identity = None

    def reset(self) -> None:
        """Clear cache and in-flight state together, without suspending."""
        logger.info("Clearing all progress data")
        self.cache.clear()
        self.guard.clear()
        self.api_status = ApiStatus()

    # === Reads ===

    def get_resource_progress(self, resource_id: str) -> ProgressRecord | None:
        return self.cache.get(resource_id)

    def is_resource_completed(self, resource_id: str) -> bool:
        record = self.cache.get(resource_id)
        return record is not None and record.is_completed

    def get_resource_progress_percentage(self, resource_id: str) -> int:
        record = self.cache.get(resource_id)
        return record.percent_complete if record else 0

    def get_resource_status(self, resource_id: str) -> ProgressStatus:
        record = self.cache.get(resource_id)
        return record.status if record else ProgressStatus.NOT_STARTED

    @property
    def stats(self) -> ProgressStats:
        return compute_progress_stats(self.cache.values())

    def add_progress_records(self, records: Sequence[ProgressRecord]) -> int:
        return self.cache.put_all(records)

    async def find_existing_progress(
        self,
        resource_id: str,
        resource_type: ResourceType | None = None,
    ) -> ProgressRecord | None:
        user_id = self.effective_user_id()
        if not user_id:
            return self.cache.get(resource_id)
        return await self.resolver.find_existing(user_id, resource_id, resource_type)

    async def load_course_progress(self, course_id: str) -> list[ProgressRecord]:
        """Fetch every record of the user within a course into the cache."""
        user_id = self.effective_user_id()
        if not user_id or not course_id:
            logger.warning("Cannot load course progress: missing user ID or course ID")
            return []

        generation = self.cache.generation
        try:
            records = await self.store.list_progress(userId=user_id, courseId=course_id)
        except ProgressSyncError as e:
            self.api_status.mark(e.message)
            raise

        self.cache.put_all(records, generation=generation)
        self.api_status.mark()
        logger.info(f"Loaded {len(records)} progress records for course {course_id}")
        return records

    async def check_api_health(self) -> ProgressHealth | None:
        if not isinstance(self.store, ProgressClient):
            return None
        health = await self.store.check_health()
        self.api_status.mark(None if health.is_healthy else health.error or f"HTTP {health.status_code}")
        return health

    # === Mutations ===

    async def start_resource_progress(
        self,
        resource_id: str,
        resource_type: ResourceType | str,
        course_id: str,
        module_id: str | None = None,
        chapter_id: str | None = None,
    ) -> ProgressRecord:
        return await self.mutator.start_resource_progress(resource_id, resource_type, course_id, module_id, chapter_id)

    async def update_resource_progress(self, resource_id: str, percent_complete: float) -> ProgressRecord:
        return await self.mutator.update_resource_progress(resource_id, percent_complete)

    async def mark_resource_completed(self, resource_id_or_progress_id: str) -> ProgressRecord:
        return await self.mutator.mark_resource_completed(resource_id_or_progress_id)

    async def toggle_resource_completion(self, resource_id_or_progress_id: str) -> ProgressRecord:
        return await self.mutator.toggle_resource_completion(resource_id_or_progress_id)

    async def delete_resource_progress(self, resource_id_or_progress_id: str) -> None:
        await self.mutator.delete_resource_progress(resource_id_or_progress_id)

    async def recalculate_parent_progress(self, child: ProgressRecord) -> None:
        await self.mutator.recalculator.recalculate_parent_progress(child)

    # === View flows ===

    async def seed_progress(
        self,
        candidates: Sequence[CandidateResource],
        course_id: str,
        module_id: str | None = None,
        chapter_id: str | None = None,
    ) -> dict[str, ProgressRecord]:
        """Make sure every candidate has a progress record.

        One preload call first, then the remaining starts one at a time with
        a short pause between them.
        """
        user_id = self.effective_user_id()
        if not user_id:
            logger.info("User not authenticated, skipping progress seeding")
            return {}

        residual = await self.preloader.preload(user_id, candidates)
        if residual:
            logger.info(f"Creating progress for {len(residual)} resources that need it")
        else:
            logger.info("All resources already have progress records")

        for index, candidate in enumerate(residual):
            if index:
                await asyncio.sleep(self.settings.PROGRESS_SEED_DELAY)
            try:
                await self.mutator.start_resource_progress(
                    candidate.id,
                    candidate.resource_type,
                    course_id,
                    module_id,
                    chapter_id,
                )
            except Exception:
                logger.exception(f"Failed to create progress for {candidate.title or candidate.id}")

        seeded: dict[str, ProgressRecord] = {}
        for candidate in candidates:
            record = self.cache.get(candidate.id)
            if record is not None:
                seeded[candidate.id] = record
        return seeded

    async def set_completion(
        self,
        resource_id: str,
        completed: bool,
        view: MutableMapping[str, bool],
    ) -> MutationResult[bool]:
        """Show ``completed`` in ``view`` at once, then sync it.

        On failure the view keeps the new state only if the cache already
        holds it (local-only records); otherwise it is reverted, so the view
        never disagrees with the cache.
        """
        current = view.get(resource_id, self.is_resource_completed(resource_id))

        async def remote_call() -> ProgressRecord:
            record = self.cache.get(resource_id)
            if record is None:
                msg = "Progress record not found. Start progress first."
                raise ProgressNotFoundError(msg, payload={"resourceId": resource_id})
            if record.is_completed == completed:
                return record
            if completed:
                return await self.mutator.mark_resource_completed(resource_id)
            return await self.mutator.toggle_resource_completion(resource_id)

        def policy(_error: Exception) -> FailurePolicy:
            if self.is_resource_completed(resource_id) == completed and resource_id in self.cache:
                return FailurePolicy.KEEP
            return FailurePolicy.REVERT

        def apply(value: bool) -> None:
            view[resource_id] = value

        return await apply_mutation(
            current,
            completed,
            apply,
            remote_call,
            reconcile=lambda record: record.is_completed,
            policy=policy,
        )

    async def toggle_completion(self, resource_id: str, view: MutableMapping[str, bool]) -> MutationResult[bool]:
        current = view.get(resource_id, self.is_resource_completed(resource_id))
        return await self.set_completion(resource_id, not current, view)
