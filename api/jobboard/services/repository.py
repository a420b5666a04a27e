from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from jobboard.core.config import get_settings
from jobboard.core.errors import JobAlreadyExistsError, JobNotFoundError
from jobboard.domain.job import Job, JobSearchCriteria, JobStatus
from jobboard.domain.pagination import Page, Pagination

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base infrastructure failure raised by repositories."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryDataError(RepositoryError):
    """Raised when a stored row cannot be mapped back to a job."""


class JobRepository(Protocol):
    """Persistence contract for job postings.

    ``publish``/``unpublish``/``archive``/``unarchive``/``close_job`` are
    conditional writes: each one only touches the row while it is still in the
    expected prior status. A write that matches nothing raises
    ``JobNotFoundError``, whether the job is missing or in the wrong status.
    """

    async def create(self, job: Job) -> None: ...

    async def update(self, job_id: str, job: Job) -> None: ...

    async def get_by_id(self, job_id: str) -> Job: ...

    async def delete(self, job_id: str) -> None: ...

    async def exists(self, job_id: str) -> bool: ...

    async def list_all(self, pagination: Pagination) -> Page[Job]: ...

    async def list_by_user(self, posted_by: str, pagination: Pagination) -> Page[Job]: ...

    async def list_published(self, pagination: Pagination) -> Page[Job]: ...

    async def list_archived(self, pagination: Pagination) -> Page[Job]: ...

    async def search(self, criteria: JobSearchCriteria, pagination: Pagination) -> Page[Job]: ...

    async def get_by_title(self, title: str) -> list[Job]: ...

    async def publish(self, job_id: str) -> None: ...

    async def unpublish(self, job_id: str) -> None: ...

    async def archive(self, job_id: str) -> None: ...

    async def unarchive(self, job_id: str) -> None: ...

    async def close_job(self, job_id: str) -> None: ...

    async def count_by_user(self, posted_by: str) -> int: ...

    async def count_applications(self, job_id: str) -> int: ...


JOB_COLUMNS_SQL = """
  id,
  job_title,
  job_description,
  job_position,
  general_requirements,
  benefits,
  posted_by,
  status,
  published_at,
  archived_at,
  created_at,
  updated_at
"""


class PostgresJobRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def create(self, job: Job) -> None:
        pool = await self._get_pool()
        params = self._job_to_params(job)
        try:
            with _translate_errors("create job"):
                await pool.execute(
                    """
                    insert into jobs (
                      id,
                      job_title,
                      job_description,
                      job_position,
                      general_requirements,
                      benefits,
                      posted_by,
                      status,
                      published_at,
                      archived_at,
                      created_at,
                      updated_at
                    )
                    values ($1, $2, $3, $4, $5::jsonb, $6::jsonb, $7, $8, $9, $10, $11, $12)
                    """,
                    params["id"],
                    params["job_title"],
                    params["job_description"],
                    params["job_position"],
                    params["general_requirements"],
                    params["benefits"],
                    params["posted_by"],
                    params["status"],
                    params["published_at"],
                    params["archived_at"],
                    params["created_at"],
                    params["updated_at"],
                )
        except pg_exc.UniqueViolationError as exc:
            raise JobAlreadyExistsError(job_id=job.id) from exc

    async def update(self, job_id: str, job: Job) -> None:
        pool = await self._get_pool()
        params = self._job_to_params(job)
        with _translate_errors("update job"):
            updated_id = await pool.fetchval(
                """
                update jobs
                set
                  job_title = $2,
                  job_description = $3,
                  job_position = $4,
                  general_requirements = $5::jsonb,
                  benefits = $6::jsonb,
                  updated_at = $7
                where id = $1 and status <> 'ARCHIVED'
                returning id
                """,
                job_id,
                params["job_title"],
                params["job_description"],
                params["job_position"],
                params["general_requirements"],
                params["benefits"],
                params["updated_at"],
            )
        if updated_id is None:
            raise JobNotFoundError(job_id=job_id)

    async def get_by_id(self, job_id: str) -> Job:
        pool = await self._get_pool()
        with _translate_errors("get job by id"):
            row = await pool.fetchrow(
                f"""
                select {JOB_COLUMNS_SQL}
                from jobs
                where id = $1
                """,
                job_id,
            )
        if not row:
            raise JobNotFoundError(job_id=job_id)
        return self._job_row_to_entity(row)

    async def delete(self, job_id: str) -> None:
        pool = await self._get_pool()
        with _translate_errors("delete job"):
            deleted_id = await pool.fetchval("delete from jobs where id = $1 returning id", job_id)
        if deleted_id is None:
            raise JobNotFoundError(job_id=job_id)

    async def exists(self, job_id: str) -> bool:
        pool = await self._get_pool()
        with _translate_errors("check job existence"):
            return bool(await pool.fetchval("select exists (select 1 from jobs where id = $1)", job_id))

    async def list_all(self, pagination: Pagination) -> Page[Job]:
        return await self._fetch_page(
            action="list jobs",
            where_sql="true",
            params=[],
            order_by_sql="created_at desc, id desc",
            pagination=pagination,
        )

    async def list_by_user(self, posted_by: str, pagination: Pagination) -> Page[Job]:
        return await self._fetch_page(
            action="list user jobs",
            where_sql="posted_by = $1",
            params=[posted_by],
            order_by_sql="created_at desc, id desc",
            pagination=pagination,
        )

    async def list_published(self, pagination: Pagination) -> Page[Job]:
        return await self._fetch_page(
            action="list published jobs",
            where_sql="status = $1",
            params=[JobStatus.PUBLISHED.value],
            order_by_sql="published_at desc nulls last, id desc",
            pagination=pagination,
        )

    async def list_archived(self, pagination: Pagination) -> Page[Job]:
        return await self._fetch_page(
            action="list archived jobs",
            where_sql="status = $1",
            params=[JobStatus.ARCHIVED.value],
            order_by_sql="archived_at desc nulls last, id desc",
            pagination=pagination,
        )

    async def search(self, criteria: JobSearchCriteria, pagination: Pagination) -> Page[Job]:
        where_sql, params = self._build_search_conditions(criteria)
        return await self._fetch_page(
            action="search jobs",
            where_sql=where_sql,
            params=params,
            order_by_sql="created_at desc, id desc",
            pagination=pagination,
        )

    async def get_by_title(self, title: str) -> list[Job]:
        pool = await self._get_pool()
        with _translate_errors("get jobs by title"):
            rows = await pool.fetch(
                f"""
                select {JOB_COLUMNS_SQL}
                from jobs
                where job_title ilike $1
                order by created_at desc, id desc
                """,
                f"%{_escape_like(title)}%",
            )
        return [self._job_row_to_entity(row) for row in rows]

    async def publish(self, job_id: str) -> None:
        # published_at keeps the first publication time.
        await self._conditional_transition(
            action="publish job",
            job_id=job_id,
            set_sql="status = 'PUBLISHED', published_at = coalesce(published_at, $2), updated_at = $2",
            guard_sql="status = 'DRAFT'",
        )

    async def unpublish(self, job_id: str) -> None:
        await self._conditional_transition(
            action="unpublish job",
            job_id=job_id,
            set_sql="status = 'DRAFT', updated_at = $2",
            guard_sql="status <> 'ARCHIVED'",
        )

    async def archive(self, job_id: str) -> None:
        await self._conditional_transition(
            action="archive job",
            job_id=job_id,
            set_sql="status = 'ARCHIVED', archived_at = $2, updated_at = $2",
            guard_sql="status <> 'ARCHIVED'",
        )

    async def unarchive(self, job_id: str) -> None:
        await self._conditional_transition(
            action="unarchive job",
            job_id=job_id,
            set_sql="status = 'DRAFT', archived_at = null, updated_at = $2",
            guard_sql="status = 'ARCHIVED'",
        )

    async def close_job(self, job_id: str) -> None:
        await self._conditional_transition(
            action="close job",
            job_id=job_id,
            set_sql="status = 'CLOSED', updated_at = $2",
            guard_sql="status <> 'ARCHIVED'",
        )

    async def count_by_user(self, posted_by: str) -> int:
        pool = await self._get_pool()
        with _translate_errors("count user jobs"):
            count = await pool.fetchval("select count(*) from jobs where posted_by = $1", posted_by)
        return int(count or 0)

    async def count_applications(self, job_id: str) -> int:
        pool = await self._get_pool()
        with _translate_errors("count applications"):
            count = await pool.fetchval("select count(*) from applications where job_id = $1", job_id)
        return int(count or 0)

    async def _conditional_transition(self, *, action: str, job_id: str, set_sql: str, guard_sql: str) -> None:
        """Apply a status change in one statement guarded by the expected prior status."""
        pool = await self._get_pool()
        with _translate_errors(action):
            updated_id = await pool.fetchval(
                f"""
                update jobs
                set {set_sql}
                where id = $1 and {guard_sql}
                returning id
                """,
                job_id,
                datetime.now(timezone.utc),
            )
        if updated_id is None:
            logger.info("conditional write matched no rows action=%s job_id=%s", action, job_id)
            raise JobNotFoundError(job_id=job_id)

    async def _fetch_page(
        self,
        *,
        action: str,
        where_sql: str,
        params: list[Any],
        order_by_sql: str,
        pagination: Pagination,
    ) -> Page[Job]:
        pool = await self._get_pool()
        limit_token = f"${len(params) + 1}"
        offset_token = f"${len(params) + 2}"
        with _translate_errors(action):
            total = await pool.fetchval(f"select count(*) from jobs where {where_sql}", *params)
            rows = await pool.fetch(
                f"""
                select {JOB_COLUMNS_SQL}
                from jobs
                where {where_sql}
                order by {order_by_sql}
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
                pagination.limit,
                pagination.offset,
            )
        items = [self._job_row_to_entity(row) for row in rows]
        return Page.build(items, pagination=pagination, total=int(total or 0))

    @staticmethod
    def _build_search_conditions(criteria: JobSearchCriteria) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        query = _coerce_text(criteria.query)
        if query:
            token = bind(f"%{_escape_like(query)}%")
            conditions.append(f"(job_title ilike {token} or job_description ilike {token} or job_position ilike {token})")

        title = _coerce_text(criteria.title)
        if title:
            conditions.append(f"job_title ilike {bind(f'%{_escape_like(title)}%')}")

        position = _coerce_text(criteria.position)
        if position:
            conditions.append(f"job_position ilike {bind(f'%{_escape_like(position)}%')}")

        posted_by = _coerce_text(criteria.posted_by)
        if posted_by:
            conditions.append(f"posted_by = {bind(posted_by)}")

        where_sql = " and ".join(conditions) if conditions else "true"
        return where_sql, params

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _job_to_params(job: Job) -> dict[str, Any]:
        try:
            general_requirements = json.dumps(list(job.general_requirements or []))
            benefits = json.dumps(list(job.benefits or []))
        except (TypeError, ValueError) as exc:
            raise RepositoryDataError(f"failed to encode job line items for job_id={job.id}") from exc
        return {
            "id": job.id,
            "job_title": job.title,
            "job_description": job.description,
            "job_position": job.position,
            "general_requirements": general_requirements,
            "benefits": benefits,
            "posted_by": job.posted_by,
            "status": job.status.value,
            "published_at": job.published_at,
            "archived_at": job.archived_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    @staticmethod
    def _job_row_to_entity(row: asyncpg.Record | dict[str, Any]) -> Job:
        job_id = row["id"]
        try:
            status = JobStatus(row["status"])
        except ValueError as exc:
            raise RepositoryDataError(f"unknown job status {row['status']!r} for job_id={job_id}") from exc
        return Job(
            id=job_id,
            title=row["job_title"],
            description=row["job_description"],
            position=row["job_position"],
            general_requirements=_decode_line_items(row["general_requirements"], field="general_requirements", job_id=job_id),
            benefits=_decode_line_items(row["benefits"], field="benefits", job_id=job_id),
            posted_by=row["posted_by"],
            status=status,
            published_at=row["published_at"],
            archived_at=row["archived_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (pg_exc.UniqueViolationError, RepositoryError):
        raise
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise RepositoryError(f"failed to {action}") from exc


def _decode_line_items(value: Any, *, field: str, job_id: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise RepositoryDataError(f"failed to decode {field} for job_id={job_id}") from exc
    if value is None:
        return []
    if not isinstance(value, list):
        raise RepositoryDataError(f"{field} must be a json array for job_id={job_id}")
    return [str(item) for item in value]


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@lru_cache
def get_repository() -> PostgresJobRepository:
    settings = get_settings()
    return PostgresJobRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.database_command_timeout_seconds,
    )
