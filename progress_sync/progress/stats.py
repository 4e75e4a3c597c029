"""Dashboard counters derived from cached progress."""

from collections.abc import Iterable

from pydantic import BaseModel

from .models import ProgressRecord, ResourceType


class ProgressStats(BaseModel):
    """Summary of the current user's cached progress."""

    courses_completed: int = 0
    modules_completed: int = 0
    chapters_completed: int = 0
    materials_completed: int = 0
    completion_rate: int = 0  # mean percent_complete over all records
    local_only_records: int = 0


def compute_progress_stats(records: Iterable[ProgressRecord]) -> ProgressStats:
    records = list(records)
    if not records:
        return ProgressStats()

    completed = {resource_type: 0 for resource_type in ResourceType}
    for record in records:
        if record.is_completed:
            completed[record.resource_type] += 1

    total_percent = sum(record.percent_complete for record in records)
    return ProgressStats(
        courses_completed=completed[ResourceType.COURSE],
        modules_completed=completed[ResourceType.MODULE],
        chapters_completed=completed[ResourceType.CHAPTER],
        materials_completed=completed[ResourceType.MATERIAL],
        completion_rate=(total_percent * 2 + len(records)) // (len(records) * 2),
        local_only_records=sum(1 for record in records if record.is_local_only),
    )
