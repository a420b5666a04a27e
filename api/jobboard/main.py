from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from jobboard.api.router import api_router
from jobboard.core.config import get_settings
from jobboard.core.errors import JobError, build_job_error_catalog
from jobboard.core.telemetry import TelemetryRuntime, setup_api_telemetry, shutdown_api_telemetry
from jobboard.services.repository import RepositoryError, RepositoryUnavailableError, get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await get_repository().close()
        get_repository.cache_clear()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.state.error_catalog = build_job_error_catalog()
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.exception_handler(JobError)
async def job_error_handler(request: Request, exc: JobError) -> JSONResponse:
    status_code, body = request.app.state.error_catalog.render(exc)
    logger.info("job error code=%s path=%s detail=%s", body["code"], request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RepositoryUnavailableError)
async def repository_unavailable_handler(request: Request, exc: RepositoryUnavailableError) -> JSONResponse:
    logger.warning("repository unavailable path=%s detail=%s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(RepositoryError)
async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    logger.error("repository failure path=%s", request.url.path, exc_info=exc)
    catalog = request.app.state.error_catalog
    return JSONResponse(
        status_code=catalog.internal.http_status,
        content={
            "code": catalog.internal.code,
            "category": catalog.internal.category.value,
            "message": catalog.internal.message,
            "details": {},
        },
    )


app.include_router(api_router)
