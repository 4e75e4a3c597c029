"""Optimistic local updates reconciled against a remote call."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .models import ProgressRecord


logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailurePolicy(str, Enum):
    """What to do with the optimistic value when the remote call fails."""

    KEEP = "keep"
    REVERT = "revert"


@dataclass
class MutationResult(Generic[T]):
    """Outcome of an optimistic mutation."""

    value: T
    record: ProgressRecord | None = None
    error: Exception | None = None
    reverted: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


async def apply_mutation(
    current: T,
    optimistic: T,
    apply: Callable[[T], None],
    remote_call: Callable[[], Awaitable[ProgressRecord]],
    *,
    reconcile: Callable[[ProgressRecord], T],
    policy: FailurePolicy | Callable[[Exception], FailurePolicy] = FailurePolicy.REVERT,
) -> MutationResult[T]:
    """Set ``optimistic`` immediately, then settle on the authoritative value.

    On success the value derived from the returned record replaces the
    optimistic one. On failure ``policy`` (or its result for the error)
    decides whether the optimistic value stays or ``current`` is restored.
    """
    apply(optimistic)
    try:
        record = await remote_call()
    except Exception as e:
        decision = policy(e) if callable(policy) else policy
        if decision == FailurePolicy.REVERT:
            logger.warning(f"Remote mutation failed, reverting optimistic state: {e}")
            apply(current)
            return MutationResult(value=current, error=e, reverted=True)
        logger.warning(f"Remote mutation failed, keeping optimistic state: {e}")
        return MutationResult(value=optimistic, error=e)

    value = reconcile(record)
    apply(value)
    return MutationResult(value=value, record=record)
