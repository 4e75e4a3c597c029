"""Schemas for the remote progress API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import ProgressStatus, ResourceType


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize only the fields that were set, camelCased."""
        return self.model_dump(by_alias=True, mode="json", exclude_unset=True)


class ProgressCreate(_WireModel):
    """Body of POST /progress."""

    user_id: str
    resource_type: ResourceType
    resource_id: str
    course_id: str
    module_id: str | None = None
    chapter_id: str | None = None
    material_id: str | None = None
    percent_complete: int = Field(default=0, ge=0, le=100)
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    started_at: datetime | None = None

    def to_wire(self) -> dict[str, Any]:
        # Required fields always go out; optional ids only when present
        payload = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        payload.setdefault("percentComplete", self.percent_complete)
        payload.setdefault("status", self.status.value)
        return payload


class ProgressUpdate(_WireModel):
    """Partial body of PUT /progress/{progressId}.

    ``completed_at=None`` set explicitly is sent as ``null`` so un-completing
    clears the timestamp server-side.
    """

    percent_complete: int | None = Field(default=None, ge=0, le=100)
    status: ProgressStatus | None = None
    completed_at: datetime | None = None


class ProgressEnvelope(BaseModel):
    """Response envelope returned by every progress endpoint."""

    success: bool | None = None
    data: Any = None
    message: str | None = None
    error: str | None = None

    model_config = ConfigDict(extra="allow")

    @property
    def error_text(self) -> str | None:
        return self.message or self.error


class ProgressHealth(BaseModel):
    """Result of a health check against the progress store."""

    is_healthy: bool
    status_code: int | None = None
    timestamp: datetime
    has_function_key: bool
    endpoint: str
    error: str | None = None
