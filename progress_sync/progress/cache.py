"""In-memory progress cache for the current user."""

import logging
from collections.abc import Iterable, Iterator

from .models import ProgressRecord, ResourceType


logger = logging.getLogger(__name__)


class ProgressCache:
    """Latest known progress record per resource id.

    Resource ids are globally unique across types, so the type is not part of
    the key. All reads by views go through here.
    """

    def __init__(self) -> None:
        self._records: dict[str, ProgressRecord] = {}
        # Bumped by clear(); writers that suspended across a clear pass the
        # value they started with and are dropped
        self.generation = 0

    def is_current(self, generation: int | None) -> bool:
        return generation is None or generation == self.generation

    def get(self, resource_id: str) -> ProgressRecord | None:
        return self._records.get(resource_id)

    def put(self, resource_id: str, record: ProgressRecord, *, generation: int | None = None) -> bool:
        """Store ``record``; returns False when ``generation`` predates the last clear."""
        if not self.is_current(generation):
            logger.debug(f"Dropping progress for {resource_id} fetched before the cache was cleared")
            return False
        self._records[resource_id] = record
        return True

    def put_all(self, records: Iterable[ProgressRecord], *, generation: int | None = None) -> int:
        """Insert records keyed by their resource id; returns how many were stored."""
        if not self.is_current(generation):
            logger.debug("Dropping progress records fetched before the cache was cleared")
            return 0
        count = 0
        for record in records:
            self._records[record.resource_id] = record
            count += 1
        if count:
            logger.debug(f"Cached {count} progress records")
        return count

    def remove(self, resource_id: str, *, generation: int | None = None) -> ProgressRecord | None:
        if not self.is_current(generation):
            return None
        return self._records.pop(resource_id, None)

    def clear(self) -> None:
        """Drop every record. Must run before a new user's reads."""
        logger.debug(f"Clearing {len(self._records)} cached progress records")
        self._records.clear()
        self.generation += 1

    def find_by_progress_id(self, progress_id: str) -> tuple[str, ProgressRecord] | None:
        """Reverse lookup from a server id to its cache key and record."""
        for resource_id, record in self._records.items():
            if record.progress_id == progress_id:
                return resource_id, record
        return None

    def children_of(self, parent_field: str, parent_id: str, resource_type: ResourceType) -> list[ProgressRecord]:
        """Records of ``resource_type`` whose ``parent_field`` equals ``parent_id``."""
        return [
            record
            for record in self._records.values()
            if record.resource_type == resource_type and getattr(record, parent_field) == parent_id
        ]

    def values(self) -> list[ProgressRecord]:
        return list(self._records.values())

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)
