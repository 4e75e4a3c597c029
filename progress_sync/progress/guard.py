"""In-flight guard for "start" operations."""

import asyncio
import logging

from .models import ProgressRecord


logger = logging.getLogger(__name__)


class InFlightGuard:
    """Tracks resource ids with a start/create outstanding.

    The owner of an acquired id publishes its outcome on release; every caller
    that lost the race awaits that same outcome instead of issuing a second
    create.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[ProgressRecord]] = {}

    def try_acquire(self, resource_id: str) -> asyncio.Future[ProgressRecord] | None:
        """Claim ``resource_id``; returns the owner's future, or None if already claimed."""
        if resource_id in self._pending:
            return None
        owned = asyncio.get_running_loop().create_future()
        self._pending[resource_id] = owned
        return owned

    def release(
        self,
        resource_id: str,
        owned: asyncio.Future[ProgressRecord],
        record: ProgressRecord | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Publish the outcome to waiters and free the id.

        The id is only freed while it still maps to ``owned``; after a clear()
        it may already belong to a newer owner.
        """
        if self._pending.get(resource_id) is owned:
            del self._pending[resource_id]
        if owned.done():
            return
        if error is not None:
            owned.set_exception(error)
            # Mark retrieved so an unobserved failure is not reported twice
            owned.exception()
        elif record is not None:
            owned.set_result(record)
        else:
            owned.cancel()

    async def wait_for(self, resource_id: str) -> ProgressRecord | None:
        """Await the outcome of the start already in flight for ``resource_id``.

        Returns None when nothing is in flight. Raises ``CancelledError`` when
        the owner gave up without an outcome (it was cancelled, or clear() ran).
        """
        future = self._pending.get(resource_id)
        if future is None:
            return None
        logger.debug(f"Start for {resource_id} already in flight, awaiting its outcome")
        return await asyncio.shield(future)

    def is_in_flight(self, resource_id: str) -> bool:
        return resource_id in self._pending

    def clear(self) -> None:
        """Forget every in-flight id; waiters are cancelled."""
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)
