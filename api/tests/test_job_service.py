from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import pytest

from jobboard.core.auth import (
    SCOPE_JOBS_ARCHIVE,
    SCOPE_JOBS_DELETE,
    SCOPE_JOBS_PUBLISH,
    SCOPE_JOBS_READ,
    SCOPE_JOBS_WRITE,
    Principal,
)
from jobboard.core.errors import (
    InsufficientPermissionsError,
    JobAlreadyArchivedError,
    JobAlreadyPublishedError,
    JobArchivedError,
    JobHasApplicationsError,
    JobNotArchivedError,
    JobNotFoundError,
    UnauthorizedUpdateError,
)
from jobboard.domain.job import Job, JobSearchCriteria, JobStatus
from jobboard.domain.pagination import Pagination
from jobboard.services.jobs import BULK_INTERNAL_ERROR_REASON, JobChanges, JobDraft, JobService
from jobboard.services.store import InMemoryJobRepository

T = TypeVar("T")
T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

OWNER = Principal(subject="owner", actor_id="owner", scopes={SCOPE_JOBS_READ})
STRANGER = Principal(subject="stranger", actor_id="stranger", scopes={SCOPE_JOBS_READ})
RECRUITER = Principal(subject="recruiter", actor_id="recruiter", scopes={SCOPE_JOBS_READ, SCOPE_JOBS_WRITE})
MANAGER = Principal(
    subject="manager",
    actor_id="manager",
    scopes={SCOPE_JOBS_READ, SCOPE_JOBS_WRITE, SCOPE_JOBS_PUBLISH, SCOPE_JOBS_ARCHIVE, SCOPE_JOBS_DELETE},
)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def _job(job_id: str, *, posted_by: str = "owner", status: JobStatus = JobStatus.DRAFT, **extra: Any) -> Job:
    job = Job.new_draft(
        job_id=job_id,
        title=extra.pop("title", f"Role {job_id}"),
        description="Day to day work",
        position=extra.pop("position", "Engineering"),
        posted_by=posted_by,
        now=T0,
    )
    job.status = status
    if status == JobStatus.ARCHIVED:
        job.archived_at = T0
    if status == JobStatus.PUBLISHED:
        job.published_at = T0
    return job


def _service(*jobs: Job) -> tuple[JobService, InMemoryJobRepository]:
    repo = InMemoryJobRepository(list(jobs))
    return JobService(repo), repo


def test_create_then_get_round_trip() -> None:
    service, _ = _service()

    async def scenario() -> tuple[Job, Job]:
        created = await service.create_job(
            JobDraft(
                title="Data Engineer",
                description="Pipelines",
                position="Data",
                general_requirements=["SQL", "Python"],
                benefits=["Remote"],
            ),
            RECRUITER,
        )
        return created, await service.get_job(created.id)

    created, fetched = _run(scenario())
    assert fetched == created
    assert fetched.status == JobStatus.DRAFT
    assert fetched.posted_by == "recruiter"
    assert fetched.general_requirements == ["SQL", "Python"]


def test_create_requires_write_scope() -> None:
    service, _ = _service()
    draft = JobDraft(title="t", description="d", position="p")

    with pytest.raises(InsufficientPermissionsError):
        _run(service.create_job(draft, OWNER))
    with pytest.raises(InsufficientPermissionsError):
        _run(service.create_job(draft, None))


def test_update_authorization_and_archived_guard() -> None:
    service, repo = _service(_job("a"), _job("b", status=JobStatus.ARCHIVED))

    with pytest.raises(UnauthorizedUpdateError):
        _run(service.update_job("a", JobChanges(title="Nope"), STRANGER))

    updated = _run(service.update_job("a", JobChanges(title="New title"), OWNER))
    assert updated.title == "New title"
    assert repo.jobs["a"].title == "New title"

    by_scope = _run(service.update_job("a", JobChanges(benefits=["Gym"]), RECRUITER))
    assert by_scope.benefits == ["Gym"]

    with pytest.raises(JobArchivedError):
        _run(service.update_job("b", JobChanges(title="Nope"), OWNER))


def test_update_without_changes_does_not_touch_updated_at() -> None:
    service, repo = _service(_job("a"))
    _run(service.update_job("a", JobChanges(title="Role a"), OWNER))
    assert repo.jobs["a"].updated_at == T0


def test_delete_is_blocked_by_applications() -> None:
    service, repo = _service(_job("a"), _job("b"))
    repo.add_application("a", count=2)

    with pytest.raises(JobHasApplicationsError) as exc_info:
        _run(service.delete_job("a", OWNER))
    assert exc_info.value.details["application_count"] == 2
    assert "a" in repo.jobs

    _run(service.delete_job("b", OWNER))
    assert "b" not in repo.jobs


def test_delete_requires_owner_or_delete_scope() -> None:
    service, repo = _service(_job("a"))

    with pytest.raises(InsufficientPermissionsError):
        _run(service.delete_job("a", RECRUITER))

    _run(service.delete_job("a", MANAGER))
    assert repo.jobs == {}


def test_publish_flow_and_advisory_errors() -> None:
    service, _ = _service(_job("a"), _job("b", status=JobStatus.ARCHIVED))

    published = _run(service.publish_job("a", OWNER))
    assert published.status == JobStatus.PUBLISHED
    assert published.published_at is not None

    with pytest.raises(JobAlreadyPublishedError):
        _run(service.publish_job("a", OWNER))
    with pytest.raises(JobArchivedError):
        _run(service.publish_job("b", OWNER))
    with pytest.raises(JobNotFoundError):
        _run(service.publish_job("missing", OWNER))


def test_transitions_require_owner_or_scope() -> None:
    service, _ = _service(_job("a"))

    with pytest.raises(InsufficientPermissionsError):
        _run(service.publish_job("a", STRANGER))
    with pytest.raises(InsufficientPermissionsError):
        _run(service.archive_job("a", RECRUITER))

    assert _run(service.publish_job("a", MANAGER)).is_published


def test_close_unpublish_archive_cycle() -> None:
    service, _ = _service(_job("a"))

    async def scenario() -> None:
        await service.publish_job("a", OWNER)
        closed = await service.close_job("a", OWNER)
        assert closed.status == JobStatus.CLOSED
        reopened = await service.unpublish_job("a", OWNER)
        assert reopened.status == JobStatus.DRAFT

        archived = await service.archive_job("a", OWNER)
        assert archived.archived_at is not None
        with pytest.raises(JobAlreadyArchivedError):
            await service.archive_job("a", OWNER)
        with pytest.raises(JobArchivedError):
            await service.close_job("a", OWNER)
        with pytest.raises(JobArchivedError):
            await service.unpublish_job("a", OWNER)

        restored = await service.unarchive_job("a", OWNER)
        assert restored.status == JobStatus.DRAFT
        assert restored.archived_at is None
        with pytest.raises(JobNotArchivedError):
            await service.unarchive_job("a", OWNER)

    _run(scenario())


def test_bulk_archive_reports_partial_failure() -> None:
    service, repo = _service(_job("A"), _job("B", status=JobStatus.ARCHIVED), _job("C"))

    result = _run(service.bulk_archive_jobs(["A", "B", "C"], OWNER))

    assert result.successful == ["A", "C"]
    assert list(result.failed) == ["B"]
    assert "already archived" in result.failed["B"]
    assert result.total == 3
    assert repo.jobs["A"].is_archived
    assert repo.jobs["C"].is_archived


def test_bulk_publish_deduplicates_and_records_missing_jobs() -> None:
    service, _ = _service(_job("A"))

    result = _run(service.bulk_publish_jobs(["A", "A", "missing"], OWNER))

    assert result.successful == ["A"]
    assert set(result.failed) == {"missing"}
    assert result.total == 2


class ExplodingRepository(InMemoryJobRepository):
    async def archive(self, job_id: str) -> None:
        if job_id == "B":
            raise RuntimeError("connection reset")
        await super().archive(job_id)


def test_bulk_isolates_unexpected_errors() -> None:
    repo = ExplodingRepository([_job("A"), _job("B"), _job("C")])
    service = JobService(repo)

    result = _run(service.bulk_archive_jobs(["A", "B", "C"], OWNER))

    assert result.successful == ["A", "C"]
    assert result.failed == {"B": BULK_INTERNAL_ERROR_REASON}


def test_bulk_stops_on_cancellation() -> None:
    class CancellingRepository(InMemoryJobRepository):
        async def publish(self, job_id: str) -> None:
            if job_id == "B":
                raise asyncio.CancelledError
            await super().publish(job_id)

    repo = CancellingRepository([_job("A"), _job("B"), _job("C")])
    service = JobService(repo)

    with pytest.raises(asyncio.CancelledError):
        _run(service.bulk_publish_jobs(["A", "B", "C"], OWNER))
    assert repo.jobs["A"].is_published
    assert repo.jobs["C"].is_draft


def test_search_and_listing_helpers() -> None:
    service, _ = _service(
        _job("a", title="Python Developer", posted_by="alice"),
        _job("b", title="Python Developer", posted_by="bob"),
        _job("c", title="Go Developer", posted_by="alice", status=JobStatus.PUBLISHED),
    )

    page = _run(service.search_jobs(JobSearchCriteria(title="Python", posted_by="alice"), Pagination()))
    assert [job.id for job in page.items] == ["a"]

    assert _run(service.count_user_jobs("alice")) == 2
    assert [job.id for job in _run(service.list_published_jobs(Pagination())).items] == ["c"]
    assert {job.id for job in _run(service.get_jobs_by_title("developer"))} == {"a", "b", "c"}
    assert _run(service.list_jobs_by_user("bob", Pagination())).total == 1


def test_stats_report_days_and_applications() -> None:
    service, repo = _service(_job("a", status=JobStatus.PUBLISHED))
    repo.add_application("a", count=4)

    stats = _run(service.get_job_stats("a", now=T0 + timedelta(days=3, hours=5)))

    assert stats.total_applications == 4
    assert stats.is_published is True
    assert stats.is_archived is False
    assert stats.days_since_published == 3
    assert stats.days_since_archived is None


class VanishingRepository(InMemoryJobRepository):
    """Deletes the row right after a committed publish, as a concurrent delete would."""

    async def publish(self, job_id: str) -> None:
        await super().publish(job_id)
        self.jobs.pop(job_id)


def test_bulk_success_is_decided_by_the_write_not_the_reload() -> None:
    repo = VanishingRepository([_job("A")])
    service = JobService(repo)

    result = _run(service.bulk_publish_jobs(["A"], OWNER))

    assert result.successful == ["A"]
    assert result.failed == {}
    assert result.total == 1


def test_single_publish_still_reports_a_failed_reload() -> None:
    service = JobService(VanishingRepository([_job("A")]))

    with pytest.raises(JobNotFoundError):
        _run(service.publish_job("A", OWNER))


def test_unpublish_of_draft_keeps_it_draft() -> None:
    service, repo = _service(_job("a"))

    job = _run(service.unpublish_job("a", OWNER))

    assert job.status == JobStatus.DRAFT
    assert repo.jobs["a"].status == JobStatus.DRAFT


def test_principal_without_actor_id_owns_what_it_creates() -> None:
    service_account = Principal(subject="svc-importer", scopes={SCOPE_JOBS_WRITE})
    service, _ = _service()

    async def scenario() -> Job:
        created = await service.create_job(JobDraft(title="t", description="d", position="p"), service_account)
        assert created.posted_by == "svc-importer"
        await service.update_job(created.id, JobChanges(title="renamed"), service_account)
        return await service.publish_job(created.id, service_account)

    published = _run(scenario())
    assert published.title == "renamed"
    assert published.status == JobStatus.PUBLISHED
