from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from jobboard.core.errors import CannotPublishError, JobAlreadyArchivedError, JobNotArchivedError


class JobStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Job:
    """Job posting aggregate.

    Transition methods only check the in-memory state. Concurrent callers are
    serialized by the repository's status-guarded writes, not here.
    """

    id: str
    title: str
    description: str
    position: str
    posted_by: str
    general_requirements: list[str] = field(default_factory=list)
    benefits: list[str] = field(default_factory=list)
    status: JobStatus = JobStatus.DRAFT
    published_at: datetime | None = None
    archived_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new_draft(
        cls,
        *,
        job_id: str,
        title: str,
        description: str,
        position: str,
        posted_by: str,
        general_requirements: list[str] | None = None,
        benefits: list[str] | None = None,
        now: datetime | None = None,
    ) -> Job:
        created_at = now or utcnow()
        return cls(
            id=job_id,
            title=title,
            description=description,
            position=position,
            posted_by=posted_by,
            general_requirements=list(general_requirements or []),
            benefits=list(benefits or []),
            status=JobStatus.DRAFT,
            created_at=created_at,
            updated_at=created_at,
        )

    @property
    def is_published(self) -> bool:
        return self.status == JobStatus.PUBLISHED

    @property
    def is_archived(self) -> bool:
        return self.status == JobStatus.ARCHIVED

    @property
    def is_draft(self) -> bool:
        return self.status == JobStatus.DRAFT

    @property
    def is_closed(self) -> bool:
        return self.status == JobStatus.CLOSED

    def can_be_published(self) -> bool:
        return self.is_draft and not self.is_archived

    def can_be_edited(self) -> bool:
        return not self.is_archived

    def publish(self, now: datetime | None = None) -> None:
        if not self.can_be_published():
            raise CannotPublishError(current_status=self.status.value)
        moment = now or utcnow()
        self.status = JobStatus.PUBLISHED
        # First-publication marker; unpublish and close keep it.
        if self.published_at is None:
            self.published_at = moment
        self.updated_at = moment

    def unpublish(self, now: datetime | None = None) -> None:
        self.status = JobStatus.DRAFT
        self.updated_at = now or utcnow()

    def close(self, now: datetime | None = None) -> None:
        self.status = JobStatus.CLOSED
        self.updated_at = now or utcnow()

    def archive(self, now: datetime | None = None) -> None:
        if self.is_archived:
            raise JobAlreadyArchivedError(job_id=self.id)
        moment = now or utcnow()
        self.status = JobStatus.ARCHIVED
        self.archived_at = moment
        self.updated_at = moment

    def unarchive(self, now: datetime | None = None) -> None:
        if not self.is_archived:
            raise JobNotArchivedError(job_id=self.id)
        self.status = JobStatus.DRAFT
        self.archived_at = None
        self.updated_at = now or utcnow()

    def update_details(
        self,
        *,
        title: str | None = None,
        description: str | None = None,
        position: str | None = None,
        general_requirements: list[str] | None = None,
        benefits: list[str] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Overwrite the supplied fields and return whether anything changed.

        Blank text is ignored. A list argument, even an empty one, replaces the
        stored list; ``None`` keeps it. Callers must reject archived jobs first.
        """
        changed = False
        if title and title != self.title:
            self.title = title
            changed = True
        if description and description != self.description:
            self.description = description
            changed = True
        if position and position != self.position:
            self.position = position
            changed = True
        if general_requirements is not None and list(general_requirements) != self.general_requirements:
            self.general_requirements = list(general_requirements)
            changed = True
        if benefits is not None and list(benefits) != self.benefits:
            self.benefits = list(benefits)
            changed = True
        if changed:
            self.updated_at = now or utcnow()
        return changed


@dataclass(frozen=True, slots=True)
class JobSearchCriteria:
    query: str | None = None
    title: str | None = None
    position: str | None = None
    posted_by: str | None = None


@dataclass(frozen=True, slots=True)
class JobStats:
    job_id: str
    title: str
    status: JobStatus
    total_applications: int
    is_published: bool
    is_archived: bool
    days_since_published: int | None
    days_since_archived: int | None
    created_at: datetime


@dataclass(slots=True)
class BulkJobOperationResult:
    successful: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    total: int = 0
