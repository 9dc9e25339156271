"""
Unit tests for Progress Tracker.
"""

from unittest.mock import patch

from src.agents.progress import ProgressTracker
from src.models.project import ProjectStatus


async def test_status_transitions(store):
    project = await store.create_project("Cafe Roma", "alice")
    assert project.status == ProjectStatus.PENDING

    tracker = ProgressTracker(store, project.id)
    started = await tracker.start()
    assert started.status == ProjectStatus.PROCESSING

    done = await tracker.complete_ingest(50)
    assert done.status == ProjectStatus.COMPLETED
    assert done.total_reviews == 50


async def test_total_never_revised_downward(store):
    project = await store.create_project("Cafe Roma", "alice")
    tracker = ProgressTracker(store, project.id)

    await tracker.complete_ingest(50)
    done = await tracker.complete_ingest(20)

    assert done.total_reviews == 50


async def test_flushes_every_n_items(store):
    project = await store.create_project("Cafe Roma", "alice")
    await store.update_project_status(project.id, ProjectStatus.COMPLETED, total_reviews=50)
    tracker = ProgressTracker(store, project.id, flush_every=10)
    await tracker.start(analyzed_baseline=0)

    with patch.object(store, "update_project_status", wraps=store.update_project_status) as update:
        for _ in range(25):
            await tracker.record()

    flushed = [call.kwargs["analyzed_reviews"] for call in update.call_args_list]
    assert flushed == [10, 20]

    done = await tracker.complete_analysis()
    assert done.analyzed_reviews == 25
    assert done.filtered_reviews == 25
    assert done.status == ProjectStatus.COMPLETED


async def test_progress_is_monotonic_from_baseline(store):
    project = await store.create_project("Cafe Roma", "alice")
    await store.update_project_status(project.id, ProjectStatus.COMPLETED, total_reviews=30)
    tracker = ProgressTracker(store, project.id, flush_every=5)

    await tracker.start(analyzed_baseline=12)
    seen = []
    for _ in range(10):
        await tracker.record()
        seen.append((await store.get_project(project.id)).analyzed_reviews)

    assert seen == sorted(seen)
    assert seen[0] == 12
    assert seen[-1] == 22


async def test_fail_records_error(store):
    project = await store.create_project("Cafe Roma", "alice")
    tracker = ProgressTracker(store, project.id)

    await tracker.start()
    await tracker.fail("No reviews could be retrieved from any source")

    snapshot = await tracker.snapshot()
    assert snapshot.status == ProjectStatus.ERROR
    assert (await store.get_project(project.id)).last_error.startswith("No reviews")


async def test_fail_never_raises_for_unknown_project(store):
    tracker = ProgressTracker(store, "missing")
    await tracker.fail("boom")
    assert await tracker.snapshot() is None


async def test_snapshot_percent_complete(store):
    project = await store.create_project("Cafe Roma", "alice")
    await store.update_project_status(
        project.id, ProjectStatus.PROCESSING, total_reviews=40, analyzed_reviews=10
    )

    snapshot = await ProgressTracker(store, project.id).snapshot()

    assert snapshot.percent_complete == 25.0
    assert snapshot.to_dict()["status"] == "processing"
