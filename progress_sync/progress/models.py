"""Progress models for tracking resource completion."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ResourceType(str, Enum):
    """Trackable resource levels, top-down."""

    COURSE = "course"
    MODULE = "module"
    CHAPTER = "chapter"
    MATERIAL = "material"


class ProgressStatus(str, Enum):
    """Completion status of a progress record."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def completion_percentage(completed: int, total: int) -> int:
    """Return completed/total as a percentage rounded half-up.

    Integer arithmetic keeps 2/3 at 67 and 1/8 at 13 without float drift.
    """
    if total <= 0:
        return 0
    return (completed * 200 + total) // (total * 2)


def clamp_percentage(value: float) -> int:
    """Clamp to [0, 100] and round half-up to an integer."""
    value = max(0.0, min(100.0, float(value)))
    return int(value + 0.5)


def derive_status(percent_complete: int) -> ProgressStatus:
    """Derive status from a percentage: 0 not started, 100 completed, else in progress."""
    if percent_complete >= 100:
        return ProgressStatus.COMPLETED
    if percent_complete > 0:
        return ProgressStatus.IN_PROGRESS
    return ProgressStatus.NOT_STARTED


class ProgressRecord(BaseModel):
    """Persisted completion state for one (user, resource) pair."""

    progress_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("progressId", "progress_id", "id"),
        serialization_alias="progressId",
    )
    user_id: str
    resource_id: str
    resource_type: ResourceType
    course_id: str
    module_id: str | None = None
    chapter_id: str | None = None
    material_id: str | None = None
    percent_complete: int = 0
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_updated: datetime | None = None
    is_local_only: bool = False

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        use_enum_values=False,
    )

    @model_validator(mode="before")
    @classmethod
    def _fill_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # Material records are keyed by materialId on older backends
        if not data.get("resourceId") and not data.get("resource_id"):
            material_id = data.get("materialId") or data.get("material_id")
            if material_id:
                data["resourceId"] = material_id
        if "status" not in data or data["status"] in (None, ""):
            percent = data.get("percentComplete", data.get("percent_complete", 0)) or 0
            data["status"] = derive_status(clamp_percentage(percent)).value
        return data

    @field_validator("percent_complete", mode="before")
    @classmethod
    def _normalize_percent(cls, value: Any) -> int:
        if value is None:
            return 0
        return clamp_percentage(value)

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    @property
    def is_synced(self) -> bool:
        """Whether the record can be addressed on the server."""
        return bool(self.progress_id) and not self.is_local_only

    def matches(self, resource_id: str) -> bool:
        """Match on resource id, or on the legacy material id."""
        return resource_id in (self.resource_id, self.material_id)

    def with_scope(self, module_id: str | None = None, chapter_id: str | None = None) -> "ProgressRecord":
        """Fill scope ids the server did not echo back."""
        missing = {}
        if self.module_id is None and module_id:
            missing["module_id"] = module_id
        if self.chapter_id is None and chapter_id:
            missing["chapter_id"] = chapter_id
        return self.model_copy(update=missing) if missing else self

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the camelCase keys the progress store uses."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class CandidateResource(BaseModel):
    """A resource a view wants tracked, e.g. one material of a chapter."""

    id: str
    resource_type: ResourceType = ResourceType.MATERIAL
    title: str | None = None

    model_config = ConfigDict(populate_by_name=True)
