from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from jobboard.domain.job import BulkJobOperationResult, Job, JobStats
from jobboard.domain.pagination import Page

JobStatusValue = Literal["DRAFT", "PUBLISHED", "CLOSED", "ARCHIVED"]


class JobCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    position: str = Field(min_length=1, max_length=255)
    general_requirements: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)


class JobUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    position: str | None = Field(default=None, min_length=1, max_length=255)
    general_requirements: list[str] | None = None
    benefits: list[str] | None = None


class JobSearchRequest(BaseModel):
    query: str | None = None
    title: str | None = None
    position: str | None = None
    posted_by: str | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class BulkJobIdsRequest(BaseModel):
    job_ids: list[str] = Field(min_length=1, max_length=100)

    @field_validator("job_ids")
    @classmethod
    def _reject_duplicates(cls, value: list[str]) -> list[str]:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for job_id in value:
            if job_id in seen:
                duplicates.add(job_id)
            seen.add(job_id)
        if duplicates:
            raise ValueError(f"duplicate job ids: {', '.join(sorted(duplicates))}")
        return value


class JobOut(BaseModel):
    id: str
    title: str
    description: str
    position: str
    general_requirements: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    posted_by: str
    status: JobStatusValue
    published_at: datetime | None = None
    archived_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: Job) -> "JobOut":
        return cls(
            id=job.id,
            title=job.title,
            description=job.description,
            position=job.position,
            general_requirements=list(job.general_requirements),
            benefits=list(job.benefits),
            posted_by=job.posted_by,
            status=job.status.value,
            published_at=job.published_at,
            archived_at=job.archived_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class PaginatedJobsOut(BaseModel):
    items: list[JobOut]
    page_number: int
    page_size: int
    total: int
    page_count: int
    empty: bool

    @classmethod
    def from_page(cls, page: Page[Job]) -> "PaginatedJobsOut":
        return cls(
            items=[JobOut.from_job(job) for job in page.items],
            page_number=page.page_number,
            page_size=page.page_size,
            total=page.total,
            page_count=page.page_count,
            empty=page.empty,
        )


class JobStatsOut(BaseModel):
    job_id: str
    title: str
    status: JobStatusValue
    total_applications: int
    is_published: bool
    is_archived: bool
    days_since_published: int | None = None
    days_since_archived: int | None = None
    created_at: datetime

    @classmethod
    def from_stats(cls, stats: JobStats) -> "JobStatsOut":
        return cls(
            job_id=stats.job_id,
            title=stats.title,
            status=stats.status.value,
            total_applications=stats.total_applications,
            is_published=stats.is_published,
            is_archived=stats.is_archived,
            days_since_published=stats.days_since_published,
            days_since_archived=stats.days_since_archived,
            created_at=stats.created_at,
        )


class BulkJobOperationOut(BaseModel):
    successful: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    total: int

    @classmethod
    def from_result(cls, result: BulkJobOperationResult) -> "BulkJobOperationOut":
        return cls(successful=list(result.successful), failed=dict(result.failed), total=result.total)


class CountOut(BaseModel):
    posted_by: str
    count: int
