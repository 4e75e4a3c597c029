"""Progress store protocol.

Engine components depend on this contract rather than on the HTTP client, so
an in-memory store can stand in for the backend.
"""

from typing import Protocol

from .models import ProgressRecord
from .schemas import ProgressCreate, ProgressUpdate


class ProgressStore(Protocol):
    """Create/read/update/delete contract of the remote progress store."""

    async def list_progress(self, **filters: str | None) -> list[ProgressRecord]:
        """List records matching the given filters."""
        ...

    async def get_progress(self, progress_id: str) -> ProgressRecord | None:
        """Fetch one record by its server id."""
        ...

    async def create_progress(self, payload: ProgressCreate) -> ProgressRecord:
        """Create a record, or return the existing one on conflict."""
        ...

    async def update_progress(self, progress_id: str, update: ProgressUpdate) -> ProgressRecord:
        """Apply a partial update and return the stored record."""
        ...

    async def delete_progress(self, progress_id: str) -> None:
        """Delete a record."""
        ...
