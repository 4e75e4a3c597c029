"""Tests for parent progress aggregation and rollup."""

import asyncio

import httpx
import pytest

from progress_sync.progress.hierarchy import aggregate_progress
from progress_sync.progress.models import ProgressStatus, ResourceType
from progress_sync.progress.session import ProgressSession
from tests.fixtures.ids import CHAPTER_ID, COURSE_ID, MODULE_ID, USER_ID
from tests.fixtures.progress_backend import FakeProgressBackend
from tests.fixtures.records import make_record


def find_backend_record(backend: FakeProgressBackend, resource_id: str) -> dict | None:
    return next((r for r in backend.records.values() if r["resourceId"] == resource_id), None)


def chapters(*percents: int) -> list:
    return [
        make_record(f"ch-{index}", ResourceType.CHAPTER, percent, module_id=MODULE_ID)
        for index, percent in enumerate(percents)
    ]


@pytest.mark.parametrize(
    ("percents", "expected"),
    [
        ((100, 100, 0), (67, ProgressStatus.IN_PROGRESS)),
        ((100, 100, 100), (100, ProgressStatus.COMPLETED)),
        ((), (0, ProgressStatus.NOT_STARTED)),
        ((0, 50), (0, ProgressStatus.NOT_STARTED)),
        ((100, 0, 0, 0, 0, 0, 0, 0), (13, ProgressStatus.IN_PROGRESS)),
    ],
)
def test_aggregate_progress(percents: tuple[int, ...], expected: tuple[int, ProgressStatus]) -> None:
    assert aggregate_progress(chapters(*percents)) == expected


@pytest.mark.asyncio
async def test_chapter_rollup_creates_and_updates_module_and_course(
    session: ProgressSession, backend: FakeProgressBackend
) -> None:
    children = chapters(100, 100, 0)
    session.add_progress_records(children)

    await session.recalculate_parent_progress(children[0])

    module = session.get_resource_progress(MODULE_ID)
    assert module is not None
    assert module.percent_complete == 67
    assert module.status == ProgressStatus.IN_PROGRESS
    assert find_backend_record(backend, MODULE_ID)["percentComplete"] == 67

    course = session.get_resource_progress(COURSE_ID)
    assert course is not None
    assert course.resource_type == ResourceType.COURSE
    assert course.percent_complete == 0
    assert course.status == ProgressStatus.NOT_STARTED


@pytest.mark.asyncio
async def test_all_chapters_completed_completes_module_and_course(
    session: ProgressSession, backend: FakeProgressBackend
) -> None:
    children = chapters(100, 100, 100)
    session.add_progress_records(children)

    await session.recalculate_parent_progress(children[-1])

    module = session.get_resource_progress(MODULE_ID)
    assert (module.percent_complete, module.status) == (100, ProgressStatus.COMPLETED)
    assert module.completed_at is not None
    course = session.get_resource_progress(COURSE_ID)
    assert (course.percent_complete, course.status) == (100, ProgressStatus.COMPLETED)


@pytest.mark.asyncio
async def test_existing_module_record_is_updated_in_place(
    session: ProgressSession, backend: FakeProgressBackend
) -> None:
    seeded = backend.seed(
        userId=USER_ID,
        resourceId=MODULE_ID,
        resourceType="module",
        courseId=COURSE_ID,
        percentComplete=0,
        status="in_progress",
    )
    session.add_progress_records([make_record(MODULE_ID, ResourceType.MODULE, 0, progress_id=seeded["progressId"])])
    children = chapters(100, 0)
    session.add_progress_records(children)

    await session.recalculate_parent_progress(children[0])

    assert backend.count("POST") == 1  # course only
    assert backend.records[seeded["progressId"]]["percentComplete"] == 50
    assert session.get_resource_progress(MODULE_ID).progress_id == seeded["progressId"]


@pytest.mark.asyncio
async def test_no_cached_children_leaves_parents_untouched(
    session: ProgressSession, backend: FakeProgressBackend
) -> None:
    orphan = make_record("ch-x", ResourceType.CHAPTER, 100, module_id=MODULE_ID)

    await session.recalculate_parent_progress(orphan)

    assert session.get_resource_progress(MODULE_ID) is None
    assert session.get_resource_progress(COURSE_ID) is None
    assert backend.network_calls == 0


@pytest.mark.asyncio
async def test_material_rollup_goes_through_chapter(session: ProgressSession, backend: FakeProgressBackend) -> None:
    session.add_progress_records(
        [
            make_record("mat-1", ResourceType.MATERIAL, 100, chapter_id=CHAPTER_ID, module_id=MODULE_ID),
            make_record("mat-2", ResourceType.MATERIAL, 0, chapter_id=CHAPTER_ID, module_id=MODULE_ID),
            make_record(CHAPTER_ID, ResourceType.CHAPTER, 0, module_id=MODULE_ID),
        ]
    )
    backend.seed(
        progressId=f"p-{CHAPTER_ID}",
        userId=USER_ID,
        resourceId=CHAPTER_ID,
        resourceType="chapter",
        courseId=COURSE_ID,
        moduleId=MODULE_ID,
    )

    await session.recalculate_parent_progress(session.get_resource_progress("mat-1"))

    chapter = session.get_resource_progress(CHAPTER_ID)
    assert (chapter.percent_complete, chapter.status) == (50, ProgressStatus.IN_PROGRESS)
    module = session.get_resource_progress(MODULE_ID)
    assert (module.percent_complete, module.status) == (0, ProgressStatus.NOT_STARTED)


@pytest.mark.asyncio
async def test_parent_update_failure_is_swallowed(
    session: ProgressSession, backend: FakeProgressBackend, caplog: pytest.LogCaptureFixture
) -> None:
    module = make_record(MODULE_ID, ResourceType.MODULE, 0)
    session.add_progress_records([module, *chapters(100)])
    backend.fail_with["PUT"] = httpx.ConnectError

    await session.recalculate_parent_progress(session.get_resource_progress("ch-0"))

    assert session.get_resource_progress(MODULE_ID) is module
    assert "Failed to recalculate parent progress" in caplog.text


@pytest.mark.asyncio
async def test_course_child_has_no_parent(session: ProgressSession, backend: FakeProgressBackend) -> None:
    await session.recalculate_parent_progress(make_record(COURSE_ID, ResourceType.COURSE, 100))

    assert backend.network_calls == 0


@pytest.mark.asyncio
async def test_reset_during_rollup_stops_parent_writes(
    session: ProgressSession, backend: FakeProgressBackend
) -> None:
    children = chapters(100, 0)
    session.add_progress_records(children)
    backend.delay = 0.05

    rollup = asyncio.create_task(session.recalculate_parent_progress(children[0]))
    await asyncio.sleep(0.01)
    session.reset()
    await rollup

    assert len(session.cache) == 0
    assert backend.count("PUT") == 0
