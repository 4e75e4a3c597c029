"""Tests for the progress cache and the in-flight guard."""

import asyncio

import pytest

from progress_sync.progress.cache import ProgressCache
from progress_sync.progress.guard import InFlightGuard
from progress_sync.progress.models import ResourceType
from tests.fixtures.records import make_record


class TestProgressCache:
    def test_put_get_and_clear(self) -> None:
        cache = ProgressCache()
        record = make_record("ch-1")

        cache.put("ch-1", record)

        assert cache.get("ch-1") is record
        assert "ch-1" in cache
        assert len(cache) == 1

        cache.clear()

        assert cache.get("ch-1") is None
        assert len(cache) == 0

    def test_put_all_keys_by_resource_id(self) -> None:
        cache = ProgressCache()

        stored = cache.put_all([make_record("a"), make_record("b")])

        assert stored == 2
        assert sorted(cache) == ["a", "b"]

    def test_find_by_progress_id_returns_cache_key(self) -> None:
        cache = ProgressCache()
        record = make_record("mat-1", ResourceType.MATERIAL, progress_id="p-99")
        cache.put("mat-1", record)

        assert cache.find_by_progress_id("p-99") == ("mat-1", record)
        assert cache.find_by_progress_id("missing") is None

    def test_children_of_filters_by_type_and_parent(self) -> None:
        cache = ProgressCache()
        cache.put_all(
            [
                make_record("ch-1", module_id="m-1"),
                make_record("ch-2", module_id="m-1"),
                make_record("ch-3", module_id="m-2"),
                make_record("mat-1", ResourceType.MATERIAL, module_id="m-1"),
            ]
        )

        children = cache.children_of("module_id", "m-1", ResourceType.CHAPTER)

        assert sorted(child.resource_id for child in children) == ["ch-1", "ch-2"]

    def test_writes_from_before_a_clear_are_dropped(self) -> None:
        cache = ProgressCache()
        generation = cache.generation

        cache.clear()

        assert not cache.put("a", make_record("a"), generation=generation)
        assert cache.put_all([make_record("b")], generation=generation) == 0
        assert len(cache) == 0

        cache.put("c", make_record("c"))
        assert cache.remove("c", generation=generation) is None
        assert "c" in cache
        assert cache.put("d", make_record("d"), generation=cache.generation)


class TestInFlightGuard:
    @pytest.mark.asyncio
    async def test_second_acquire_fails_until_release(self) -> None:
        guard = InFlightGuard()

        owned = guard.try_acquire("r")
        assert owned is not None
        assert guard.try_acquire("r") is None
        assert guard.is_in_flight("r")

        guard.release("r", owned, record=make_record("r"))

        assert not guard.is_in_flight("r")
        assert guard.try_acquire("r") is not None

    @pytest.mark.asyncio
    async def test_waiters_receive_owner_outcome(self) -> None:
        guard = InFlightGuard()
        record = make_record("r")
        owned = guard.try_acquire("r")

        waiter = asyncio.create_task(guard.wait_for("r"))
        await asyncio.sleep(0)
        guard.release("r", owned, record=record)

        assert await waiter is record

    @pytest.mark.asyncio
    async def test_waiters_receive_owner_error(self) -> None:
        guard = InFlightGuard()
        owned = guard.try_acquire("r")

        waiter = asyncio.create_task(guard.wait_for("r"))
        await asyncio.sleep(0)
        guard.release("r", owned, error=RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            await waiter

    @pytest.mark.asyncio
    async def test_wait_for_idle_resource_returns_none(self) -> None:
        assert await InFlightGuard().wait_for("idle") is None

    @pytest.mark.asyncio
    async def test_clear_cancels_waiters(self) -> None:
        guard = InFlightGuard()
        guard.try_acquire("r")
        waiter = asyncio.create_task(guard.wait_for("r"))
        await asyncio.sleep(0)

        guard.clear()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert len(guard) == 0

    @pytest.mark.asyncio
    async def test_release_after_clear_keeps_newer_owner(self) -> None:
        guard = InFlightGuard()
        stale = guard.try_acquire("r")
        guard.clear()
        current = guard.try_acquire("r")
        waiter = asyncio.create_task(guard.wait_for("r"))
        await asyncio.sleep(0)

        guard.release("r", stale, record=make_record("r", user_id="someone-else"))

        assert guard.is_in_flight("r")
        assert not waiter.done()

        fresh = make_record("r")
        guard.release("r", current, record=fresh)

        assert await waiter is fresh
        assert not guard.is_in_flight("r")

    @pytest.mark.asyncio
    async def test_release_without_outcome_cancels_waiters(self) -> None:
        guard = InFlightGuard()
        owned = guard.try_acquire("r")
        waiter = asyncio.create_task(guard.wait_for("r"))
        await asyncio.sleep(0)

        guard.release("r", owned)

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not guard.is_in_flight("r")
