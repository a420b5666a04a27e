from fastapi import APIRouter, Depends, Query, Response, status as http_status

from jobboard.core.auth import (
    SCOPE_JOBS_ARCHIVE,
    SCOPE_JOBS_PUBLISH,
    SCOPE_JOBS_READ,
    SCOPE_JOBS_WRITE,
    Principal,
)
from jobboard.core.config import Settings, get_settings
from jobboard.core.security import get_principal, require_scope
from jobboard.domain.job import JobSearchCriteria
from jobboard.domain.pagination import Pagination
from jobboard.schemas.jobs import (
    BulkJobIdsRequest,
    BulkJobOperationOut,
    CountOut,
    JobCreateRequest,
    JobOut,
    JobSearchRequest,
    JobStatsOut,
    JobUpdateRequest,
    PaginatedJobsOut,
)
from jobboard.services.jobs import JobChanges, JobDraft, JobService
from jobboard.services.repository import get_repository

router = APIRouter()


def get_job_service(repository=Depends(get_repository)) -> JobService:
    return JobService(repository)


def get_pagination(
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1, le=100),
    settings: Settings = Depends(get_settings),
) -> Pagination:
    size = page_size or settings.default_page_size
    return Pagination(page=page, page_size=min(size, settings.max_page_size))


@router.get("", response_model=PaginatedJobsOut)
async def list_jobs(
    pagination: Pagination = Depends(get_pagination),
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> PaginatedJobsOut:
    return PaginatedJobsOut.from_page(await service.list_jobs(pagination))


@router.post("", response_model=JobOut, status_code=http_status.HTTP_201_CREATED)
async def create_job(
    payload: JobCreateRequest,
    principal: Principal = Depends(require_scope(SCOPE_JOBS_WRITE)),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    draft = JobDraft(
        title=payload.title,
        description=payload.description,
        position=payload.position,
        general_requirements=payload.general_requirements,
        benefits=payload.benefits,
    )
    return JobOut.from_job(await service.create_job(draft, principal))


@router.get("/published", response_model=PaginatedJobsOut)
async def list_published_jobs(
    pagination: Pagination = Depends(get_pagination),
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> PaginatedJobsOut:
    return PaginatedJobsOut.from_page(await service.list_published_jobs(pagination))


@router.get("/archived", response_model=PaginatedJobsOut)
async def list_archived_jobs(
    pagination: Pagination = Depends(get_pagination),
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> PaginatedJobsOut:
    return PaginatedJobsOut.from_page(await service.list_archived_jobs(pagination))


@router.get("/by-user/{user_id}", response_model=PaginatedJobsOut)
async def list_jobs_by_user(
    user_id: str,
    pagination: Pagination = Depends(get_pagination),
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> PaginatedJobsOut:
    return PaginatedJobsOut.from_page(await service.list_jobs_by_user(user_id, pagination))


@router.get("/by-title/{title}", response_model=list[JobOut])
async def get_jobs_by_title(
    title: str,
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> list[JobOut]:
    return [JobOut.from_job(job) for job in await service.get_jobs_by_title(title)]


@router.get("/count/by-user/{user_id}", response_model=CountOut)
async def count_user_jobs(
    user_id: str,
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> CountOut:
    return CountOut(posted_by=user_id, count=await service.count_user_jobs(user_id))


@router.post("/search", response_model=PaginatedJobsOut)
async def search_jobs(
    payload: JobSearchRequest,
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    settings: Settings = Depends(get_settings),
    service: JobService = Depends(get_job_service),
) -> PaginatedJobsOut:
    criteria = JobSearchCriteria(
        query=payload.query,
        title=payload.title,
        position=payload.position,
        posted_by=payload.posted_by,
    )
    pagination = Pagination(page=payload.page, page_size=min(payload.page_size, settings.max_page_size))
    return PaginatedJobsOut.from_page(await service.search_jobs(criteria, pagination))


@router.post("/bulk/publish", response_model=BulkJobOperationOut)
async def bulk_publish_jobs(
    payload: BulkJobIdsRequest,
    principal: Principal = Depends(require_scope(SCOPE_JOBS_PUBLISH)),
    service: JobService = Depends(get_job_service),
) -> BulkJobOperationOut:
    return BulkJobOperationOut.from_result(await service.bulk_publish_jobs(payload.job_ids, principal))


@router.post("/bulk/archive", response_model=BulkJobOperationOut)
async def bulk_archive_jobs(
    payload: BulkJobIdsRequest,
    principal: Principal = Depends(require_scope(SCOPE_JOBS_ARCHIVE)),
    service: JobService = Depends(get_job_service),
) -> BulkJobOperationOut:
    return BulkJobOperationOut.from_result(await service.bulk_archive_jobs(payload.job_ids, principal))


@router.get("/{job_id}", response_model=JobOut)
async def get_job(
    job_id: str,
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.get_job(job_id))


@router.get("/{job_id}/stats", response_model=JobStatsOut)
async def get_job_stats(
    job_id: str,
    _: Principal = Depends(require_scope(SCOPE_JOBS_READ)),
    service: JobService = Depends(get_job_service),
) -> JobStatsOut:
    return JobStatsOut.from_stats(await service.get_job_stats(job_id))


@router.put("/{job_id}", response_model=JobOut)
async def update_job(
    job_id: str,
    payload: JobUpdateRequest,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    changes = JobChanges(
        title=payload.title,
        description=payload.description,
        position=payload.position,
        general_requirements=payload.general_requirements,
        benefits=payload.benefits,
    )
    return JobOut.from_job(await service.update_job(job_id, changes, principal))


@router.delete("/{job_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> Response:
    await service.delete_job(job_id, principal)
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.post("/{job_id}/publish", response_model=JobOut)
async def publish_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.publish_job(job_id, principal))


@router.post("/{job_id}/unpublish", response_model=JobOut)
async def unpublish_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.unpublish_job(job_id, principal))


@router.post("/{job_id}/close", response_model=JobOut)
async def close_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.close_job(job_id, principal))


@router.post("/{job_id}/archive", response_model=JobOut)
async def archive_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.archive_job(job_id, principal))


@router.post("/{job_id}/unarchive", response_model=JobOut)
async def unarchive_job(
    job_id: str,
    principal: Principal = Depends(get_principal),
    service: JobService = Depends(get_job_service),
) -> JobOut:
    return JobOut.from_job(await service.unarchive_job(job_id, principal))
