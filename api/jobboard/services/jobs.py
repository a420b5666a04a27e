from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from opentelemetry import trace

from jobboard.core.auth import (
    SCOPE_JOBS_ALL,
    SCOPE_JOBS_ARCHIVE,
    SCOPE_JOBS_DELETE,
    SCOPE_JOBS_PUBLISH,
    SCOPE_JOBS_WRITE,
    Principal,
)
from jobboard.core.errors import (
    InsufficientPermissionsError,
    JobAlreadyArchivedError,
    JobAlreadyPublishedError,
    JobArchivedError,
    JobError,
    JobHasApplicationsError,
    JobNotArchivedError,
    UnauthorizedUpdateError,
)
from jobboard.domain.job import BulkJobOperationResult, Job, JobSearchCriteria, JobStats, utcnow
from jobboard.domain.pagination import Page, Pagination
from jobboard.services.repository import JobRepository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

BULK_INTERNAL_ERROR_REASON = "internal error"


@dataclass(slots=True)
class JobDraft:
    title: str
    description: str
    position: str
    general_requirements: list[str] | None = None
    benefits: list[str] | None = None


@dataclass(slots=True)
class JobChanges:
    title: str | None = None
    description: str | None = None
    position: str | None = None
    general_requirements: list[str] | None = None
    benefits: list[str] | None = None


class JobService:
    """Coordinates authorization, the job state machine and the repository."""

    def __init__(self, repository: JobRepository) -> None:
        self.repository = repository

    async def create_job(self, draft: JobDraft, principal: Principal | None) -> Job:
        actor = self._require_principal(principal)
        if not actor.has_any_scope(SCOPE_JOBS_WRITE, SCOPE_JOBS_ALL):
            raise InsufficientPermissionsError(required_scope=SCOPE_JOBS_WRITE, user_id=actor.identity)

        job = Job.new_draft(
            job_id=str(uuid4()),
            title=draft.title,
            description=draft.description,
            position=draft.position,
            posted_by=actor.identity,
            general_requirements=draft.general_requirements,
            benefits=draft.benefits,
        )
        await self.repository.create(job)
        logger.info("job created job_id=%s posted_by=%s", job.id, job.posted_by)
        return job

    async def get_job(self, job_id: str) -> Job:
        return await self.repository.get_by_id(job_id)

    async def list_jobs(self, pagination: Pagination) -> Page[Job]:
        return await self.repository.list_all(pagination)

    async def list_published_jobs(self, pagination: Pagination) -> Page[Job]:
        return await self.repository.list_published(pagination)

    async def list_archived_jobs(self, pagination: Pagination) -> Page[Job]:
        return await self.repository.list_archived(pagination)

    async def list_jobs_by_user(self, posted_by: str, pagination: Pagination) -> Page[Job]:
        return await self.repository.list_by_user(posted_by, pagination)

    async def search_jobs(self, criteria: JobSearchCriteria, pagination: Pagination) -> Page[Job]:
        return await self.repository.search(criteria, pagination)

    async def get_jobs_by_title(self, title: str) -> list[Job]:
        return await self.repository.get_by_title(title)

    async def count_user_jobs(self, posted_by: str) -> int:
        return await self.repository.count_by_user(posted_by)

    async def update_job(self, job_id: str, changes: JobChanges, principal: Principal | None) -> Job:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)

        if not (job.posted_by == actor.identity or actor.has_any_scope(SCOPE_JOBS_WRITE, SCOPE_JOBS_ALL)):
            raise UnauthorizedUpdateError(job_id=job_id, user_id=actor.identity)
        if not job.can_be_edited():
            raise JobArchivedError(job_id=job_id)

        changed = job.update_details(
            title=changes.title,
            description=changes.description,
            position=changes.position,
            general_requirements=changes.general_requirements,
            benefits=changes.benefits,
        )
        if changed:
            await self.repository.update(job_id, job)
            logger.info("job updated job_id=%s actor=%s", job_id, actor.identity)
        return job

    async def delete_job(self, job_id: str, principal: Principal | None) -> None:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_DELETE)

        application_count = await self.repository.count_applications(job_id)
        if application_count > 0:
            raise JobHasApplicationsError(job_id=job_id, application_count=application_count)

        await self.repository.delete(job_id)
        logger.info("job deleted job_id=%s actor=%s", job_id, actor.identity)

    async def publish_job(self, job_id: str, principal: Principal | None) -> Job:
        actor = await self._apply_publish(job_id, principal)
        return await self._reload(job_id, "published", actor)

    async def unpublish_job(self, job_id: str, principal: Principal | None) -> Job:
        actor = await self._apply_unpublish(job_id, principal)
        return await self._reload(job_id, "unpublished", actor)

    async def close_job(self, job_id: str, principal: Principal | None) -> Job:
        actor = await self._apply_close(job_id, principal)
        return await self._reload(job_id, "closed", actor)

    async def archive_job(self, job_id: str, principal: Principal | None) -> Job:
        actor = await self._apply_archive(job_id, principal)
        return await self._reload(job_id, "archived", actor)

    async def unarchive_job(self, job_id: str, principal: Principal | None) -> Job:
        actor = await self._apply_unarchive(job_id, principal)
        return await self._reload(job_id, "unarchived", actor)

    # The _apply_* methods stop at the conditional write. Bulk callers judge
    # success on the write alone, without the reload that follows it.

    async def _apply_publish(self, job_id: str, principal: Principal | None) -> Principal:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_PUBLISH)

        # Advisory checks for clearer errors; the guarded write below decides.
        if job.is_archived:
            raise JobArchivedError("cannot publish an archived job", job_id=job_id)
        if job.is_published:
            raise JobAlreadyPublishedError(job_id=job_id)
        job.publish()

        await self.repository.publish(job_id)
        return actor

    async def _apply_unpublish(self, job_id: str, principal: Principal | None) -> Principal:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_PUBLISH)

        if job.is_archived:
            raise JobArchivedError("cannot unpublish an archived job", job_id=job_id)
        job.unpublish()

        await self.repository.unpublish(job_id)
        return actor

    async def _apply_close(self, job_id: str, principal: Principal | None) -> Principal:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_PUBLISH)

        if job.is_archived:
            raise JobArchivedError("cannot close an archived job", job_id=job_id)
        job.close()

        await self.repository.close_job(job_id)
        return actor

    async def _apply_archive(self, job_id: str, principal: Principal | None) -> Principal:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_ARCHIVE)

        if job.is_archived:
            raise JobAlreadyArchivedError(job_id=job_id)
        job.archive()

        await self.repository.archive(job_id)
        return actor

    async def _apply_unarchive(self, job_id: str, principal: Principal | None) -> Principal:
        actor = self._require_principal(principal)
        job = await self.repository.get_by_id(job_id)
        self._authorize_owner_or_scope(job, actor, SCOPE_JOBS_ARCHIVE)

        if not job.is_archived:
            raise JobNotArchivedError(job_id=job_id)
        job.unarchive()

        await self.repository.unarchive(job_id)
        return actor

    async def get_job_stats(self, job_id: str, now: datetime | None = None) -> JobStats:
        job = await self.repository.get_by_id(job_id)
        total_applications = await self.repository.count_applications(job_id)
        moment = now or utcnow()

        return JobStats(
            job_id=job.id,
            title=job.title,
            status=job.status,
            total_applications=total_applications,
            is_published=job.is_published,
            is_archived=job.is_archived,
            days_since_published=_days_between(job.published_at, moment),
            days_since_archived=_days_between(job.archived_at, moment),
            created_at=job.created_at,
        )

    async def bulk_publish_jobs(self, job_ids: Iterable[str], principal: Principal | None) -> BulkJobOperationResult:
        with tracer.start_as_current_span("jobs.bulk_publish"):
            return await self._run_bulk("publish", job_ids, lambda job_id: self._apply_publish(job_id, principal))

    async def bulk_archive_jobs(self, job_ids: Iterable[str], principal: Principal | None) -> BulkJobOperationResult:
        with tracer.start_as_current_span("jobs.bulk_archive"):
            return await self._run_bulk("archive", job_ids, lambda job_id: self._apply_archive(job_id, principal))

    async def _run_bulk(
        self,
        operation: str,
        job_ids: Iterable[str],
        apply: Callable[[str], Awaitable[object]],
    ) -> BulkJobOperationResult:
        """Apply ``apply`` to each distinct id, isolating failures per item.

        Items run one after another. Task cancellation is not caught, so a
        cancelled bulk call stops before the next write and keeps what was
        already committed.
        """
        unique_ids = list(dict.fromkeys(job_ids))
        result = BulkJobOperationResult(total=len(unique_ids))

        for job_id in unique_ids:
            with tracer.start_as_current_span(f"jobs.bulk_{operation}.item") as span:
                span.set_attribute("job.id", job_id)
                try:
                    await apply(job_id)
                except JobError as exc:
                    span.set_attribute("job.bulk.outcome", "failed")
                    result.failed[job_id] = str(exc)
                    continue
                except Exception:
                    span.set_attribute("job.bulk.outcome", "error")
                    logger.exception("bulk %s failed for job_id=%s", operation, job_id)
                    result.failed[job_id] = BULK_INTERNAL_ERROR_REASON
                    continue
                span.set_attribute("job.bulk.outcome", "ok")
                result.successful.append(job_id)

        logger.info(
            "bulk %s finished total=%s successful=%s failed=%s",
            operation,
            result.total,
            len(result.successful),
            len(result.failed),
        )
        return result

    async def _reload(self, job_id: str, event: str, actor: Principal) -> Job:
        logger.info("job %s job_id=%s actor=%s", event, job_id, actor.identity)
        return await self.repository.get_by_id(job_id)

    @staticmethod
    def _require_principal(principal: Principal | None) -> Principal:
        if principal is None:
            raise InsufficientPermissionsError("missing authorization context")
        return principal

    @staticmethod
    def _authorize_owner_or_scope(job: Job, actor: Principal, scope: str) -> None:
        if job.posted_by == actor.identity:
            return
        if actor.has_any_scope(scope, SCOPE_JOBS_ALL):
            return
        raise InsufficientPermissionsError(required_scope=scope, user_id=actor.identity)


def _days_between(start: datetime | None, end: datetime) -> int | None:
    if start is None:
        return None
    return int((end - start).total_seconds() // 86400)
