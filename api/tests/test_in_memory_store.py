from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import pytest

from jobboard.core.errors import JobAlreadyExistsError, JobNotFoundError
from jobboard.domain.job import Job, JobSearchCriteria, JobStatus
from jobboard.domain.pagination import Pagination
from jobboard.services.store import InMemoryJobRepository

T = TypeVar("T")
T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _job(job_id: str, *, offset_minutes: int = 0, **overrides: Any) -> Job:
    job = Job.new_draft(
        job_id=job_id,
        title=overrides.pop("title", f"Role {job_id}"),
        description=overrides.pop("description", "Day to day work"),
        position=overrides.pop("position", "Engineering"),
        posted_by=overrides.pop("posted_by", "user-1"),
        now=T0 + timedelta(minutes=offset_minutes),
    )
    for key, value in overrides.items():
        setattr(job, key, value)
    return job


def test_create_rejects_duplicate_id() -> None:
    repo = InMemoryJobRepository()

    async def scenario() -> None:
        await repo.create(_job("a"))
        with pytest.raises(JobAlreadyExistsError):
            await repo.create(_job("a"))

    _run(scenario())


def test_get_returns_independent_copy() -> None:
    repo = InMemoryJobRepository([_job("a")])

    async def scenario() -> Job:
        job = await repo.get_by_id("a")
        job.general_requirements.append("mutated")
        job.status = JobStatus.PUBLISHED
        return await repo.get_by_id("a")

    fresh = _run(scenario())
    assert fresh.general_requirements == []
    assert fresh.status == JobStatus.DRAFT


def test_concurrent_publish_has_exactly_one_winner() -> None:
    repo = InMemoryJobRepository([_job("a")])

    async def scenario() -> list[Any]:
        return await asyncio.gather(*(repo.publish("a") for _ in range(5)), return_exceptions=True)

    outcomes = _run(scenario())
    assert sum(1 for outcome in outcomes if outcome is None) == 1
    assert all(isinstance(outcome, JobNotFoundError) for outcome in outcomes if outcome is not None)
    assert repo.jobs["a"].status == JobStatus.PUBLISHED
    assert repo.jobs["a"].published_at is not None


def test_republish_keeps_first_published_at() -> None:
    repo = InMemoryJobRepository([_job("a")])

    async def scenario() -> None:
        await repo.publish("a")
        first = repo.jobs["a"].published_at
        await repo.unpublish("a")
        await repo.publish("a")
        assert repo.jobs["a"].published_at == first

    _run(scenario())


def test_transition_guards() -> None:
    repo = InMemoryJobRepository([_job("a")])

    async def scenario() -> None:
        await repo.unpublish("a")
        assert repo.jobs["a"].status == JobStatus.DRAFT
        with pytest.raises(JobNotFoundError):
            await repo.unarchive("a")

        await repo.archive("a")
        assert repo.jobs["a"].archived_at is not None
        with pytest.raises(JobNotFoundError):
            await repo.archive("a")
        with pytest.raises(JobNotFoundError):
            await repo.close_job("a")
        with pytest.raises(JobNotFoundError):
            await repo.unpublish("a")
        with pytest.raises(JobNotFoundError):
            await repo.publish("a")

        await repo.unarchive("a")
        assert repo.jobs["a"].status == JobStatus.DRAFT
        assert repo.jobs["a"].archived_at is None

        await repo.close_job("a")
        await repo.unpublish("a")
        assert repo.jobs["a"].status == JobStatus.DRAFT

    _run(scenario())


def test_update_writes_details_only() -> None:
    repo = InMemoryJobRepository([_job("a")])

    async def scenario() -> None:
        await repo.publish("a")
        stale = _job("a", posted_by="someone-else", title="Renamed")
        await repo.update("a", stale)

    _run(scenario())
    stored = repo.jobs["a"]
    assert stored.title == "Renamed"
    assert stored.posted_by == "user-1"
    assert stored.status == JobStatus.PUBLISHED


def test_update_of_archived_job_matches_nothing() -> None:
    repo = InMemoryJobRepository([_job("a", status=JobStatus.ARCHIVED, archived_at=T0)])

    with pytest.raises(JobNotFoundError):
        _run(repo.update("a", _job("a", title="Renamed")))
    assert repo.jobs["a"].title == "Role a"


def test_list_orders_newest_first_and_paginates() -> None:
    repo = InMemoryJobRepository([_job(f"j{i}", offset_minutes=i) for i in range(5)])

    page = _run(repo.list_all(Pagination(page=2, page_size=2)))
    assert [job.id for job in page.items] == ["j2", "j1"]
    assert page.total == 5
    assert page.page_count == 3


def test_search_is_a_conjunction_of_filters() -> None:
    repo = InMemoryJobRepository(
        [
            _job("a", title="Python Developer", posted_by="alice"),
            _job("b", title="Python Developer", posted_by="bob"),
            _job("c", title="Go Developer", posted_by="alice"),
        ]
    )

    page = _run(repo.search(JobSearchCriteria(title="python", posted_by="alice"), Pagination()))
    assert [job.id for job in page.items] == ["a"]
    assert page.total == 1


def test_search_without_filters_matches_everything() -> None:
    repo = InMemoryJobRepository([_job("a"), _job("b")])
    page = _run(repo.search(JobSearchCriteria(query="  "), Pagination()))
    assert page.total == 2


def test_counts() -> None:
    repo = InMemoryJobRepository([_job("a"), _job("b"), _job("c", posted_by="other")])
    repo.add_application("a", count=2)

    assert _run(repo.count_by_user("user-1")) == 2
    assert _run(repo.count_applications("a")) == 2
    assert _run(repo.count_applications("b")) == 0
