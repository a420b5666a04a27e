from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from jobboard.core.errors import JobAlreadyExistsError, JobNotFoundError
from jobboard.domain.job import Job, JobSearchCriteria, JobStatus
from jobboard.domain.pagination import Page, Pagination


def _copy(job: Job) -> Job:
    return replace(job, general_requirements=list(job.general_requirements), benefits=list(job.benefits))


def _epoch(value: datetime | None) -> float:
    return value.timestamp() if value is not None else float("-inf")


class InMemoryJobRepository:
    """Process-local job repository with the same conditional-write semantics as Postgres.

    Every status guard is checked and applied without an ``await`` in between,
    which makes each transition atomic on the event loop.
    """

    def __init__(self, jobs: list[Job] | None = None) -> None:
        self.jobs: dict[str, Job] = {}
        self.applications: Counter[str] = Counter()
        for job in jobs or []:
            self.jobs[job.id] = _copy(job)

    def add_application(self, job_id: str, count: int = 1) -> None:
        self.applications[job_id] += count

    async def create(self, job: Job) -> None:
        await asyncio.sleep(0)
        if job.id in self.jobs:
            raise JobAlreadyExistsError(job_id=job.id)
        self.jobs[job.id] = _copy(job)

    async def update(self, job_id: str, job: Job) -> None:
        await asyncio.sleep(0)
        current = self.jobs.get(job_id)
        if current is None or current.status == JobStatus.ARCHIVED:
            raise JobNotFoundError(job_id=job_id)
        # Only detail fields are written here; status moves through the guarded transitions.
        current.title = job.title
        current.description = job.description
        current.position = job.position
        current.general_requirements = list(job.general_requirements)
        current.benefits = list(job.benefits)
        current.updated_at = job.updated_at

    async def get_by_id(self, job_id: str) -> Job:
        await asyncio.sleep(0)
        job = self.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id=job_id)
        return _copy(job)

    async def delete(self, job_id: str) -> None:
        await asyncio.sleep(0)
        if self.jobs.pop(job_id, None) is None:
            raise JobNotFoundError(job_id=job_id)

    async def exists(self, job_id: str) -> bool:
        await asyncio.sleep(0)
        return job_id in self.jobs

    async def list_all(self, pagination: Pagination) -> Page[Job]:
        rows = sorted(self.jobs.values(), key=lambda job: (job.created_at, job.id), reverse=True)
        return self._page(rows, pagination)

    async def list_by_user(self, posted_by: str, pagination: Pagination) -> Page[Job]:
        rows = [job for job in self.jobs.values() if job.posted_by == posted_by]
        rows.sort(key=lambda job: (job.created_at, job.id), reverse=True)
        return self._page(rows, pagination)

    async def list_published(self, pagination: Pagination) -> Page[Job]:
        rows = [job for job in self.jobs.values() if job.status == JobStatus.PUBLISHED]
        rows.sort(key=lambda job: (_epoch(job.published_at), job.id), reverse=True)
        return self._page(rows, pagination)

    async def list_archived(self, pagination: Pagination) -> Page[Job]:
        rows = [job for job in self.jobs.values() if job.status == JobStatus.ARCHIVED]
        rows.sort(key=lambda job: (_epoch(job.archived_at), job.id), reverse=True)
        return self._page(rows, pagination)

    async def search(self, criteria: JobSearchCriteria, pagination: Pagination) -> Page[Job]:
        rows = [job for job in self.jobs.values() if self._matches(job, criteria)]
        rows.sort(key=lambda job: (job.created_at, job.id), reverse=True)
        return self._page(rows, pagination)

    async def get_by_title(self, title: str) -> list[Job]:
        needle = title.strip().lower()
        rows = [job for job in self.jobs.values() if needle in job.title.lower()]
        rows.sort(key=lambda job: (job.created_at, job.id), reverse=True)
        return [_copy(job) for job in rows]

    async def publish(self, job_id: str) -> None:
        await asyncio.sleep(0)
        job = self._guarded(job_id, lambda status: status == JobStatus.DRAFT)
        now = datetime.now(timezone.utc)
        job.status = JobStatus.PUBLISHED
        if job.published_at is None:
            job.published_at = now
        job.updated_at = now

    async def unpublish(self, job_id: str) -> None:
        await asyncio.sleep(0)
        job = self._guarded(job_id, lambda status: status != JobStatus.ARCHIVED)
        job.status = JobStatus.DRAFT
        job.updated_at = datetime.now(timezone.utc)

    async def archive(self, job_id: str) -> None:
        await asyncio.sleep(0)
        job = self._guarded(job_id, lambda status: status != JobStatus.ARCHIVED)
        now = datetime.now(timezone.utc)
        job.status = JobStatus.ARCHIVED
        job.archived_at = now
        job.updated_at = now

    async def unarchive(self, job_id: str) -> None:
        await asyncio.sleep(0)
        job = self._guarded(job_id, lambda status: status == JobStatus.ARCHIVED)
        job.status = JobStatus.DRAFT
        job.archived_at = None
        job.updated_at = datetime.now(timezone.utc)

    async def close_job(self, job_id: str) -> None:
        await asyncio.sleep(0)
        job = self._guarded(job_id, lambda status: status != JobStatus.ARCHIVED)
        job.status = JobStatus.CLOSED
        job.updated_at = datetime.now(timezone.utc)

    async def count_by_user(self, posted_by: str) -> int:
        return sum(1 for job in self.jobs.values() if job.posted_by == posted_by)

    async def count_applications(self, job_id: str) -> int:
        return self.applications.get(job_id, 0)

    def _guarded(self, job_id: str, guard: Callable[[JobStatus], bool]) -> Job:
        job = self.jobs.get(job_id)
        if job is None or not guard(job.status):
            raise JobNotFoundError(job_id=job_id)
        return job

    @staticmethod
    def _matches(job: Job, criteria: JobSearchCriteria) -> bool:
        query = (criteria.query or "").strip().lower()
        if query and not any(query in text.lower() for text in (job.title, job.description, job.position)):
            return False
        title = (criteria.title or "").strip().lower()
        if title and title not in job.title.lower():
            return False
        position = (criteria.position or "").strip().lower()
        if position and position not in job.position.lower():
            return False
        posted_by = (criteria.posted_by or "").strip()
        if posted_by and job.posted_by != posted_by:
            return False
        return True

    @staticmethod
    def _page(rows: list[Job], pagination: Pagination) -> Page[Job]:
        window = rows[pagination.offset : pagination.offset + pagination.limit]
        return Page.build([_copy(job) for job in window], pagination=pagination, total=len(rows))
