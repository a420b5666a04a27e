from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

ERROR_CODE_PREFIX = "JOB"


class ErrorCategory(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BUSINESS = "business"
    AUTHORIZATION = "authorization"
    INTERNAL = "internal"


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    ARCHIVED = "ARCHIVED"
    NOT_ARCHIVED = "NOT_ARCHIVED"
    ALREADY_ARCHIVED = "ALREADY_ARCHIVED"
    ALREADY_PUBLISHED = "ALREADY_PUBLISHED"
    HAS_APPLICATIONS = "HAS_APPLICATIONS"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    UNAUTHORIZED_UPDATE = "UNAUTHORIZED_UPDATE"
    CANNOT_PUBLISH = "CANNOT_PUBLISH"


@dataclass(frozen=True, slots=True)
class ErrorSpec:
    code: str
    category: ErrorCategory
    http_status: int
    message: str


@dataclass(frozen=True, slots=True)
class ErrorCatalog:
    """Read-only lookup from domain failure kind to its external rendering."""

    entries: Mapping[ErrorKind, ErrorSpec]
    internal: ErrorSpec = ErrorSpec(
        code=f"{ERROR_CODE_PREFIX}.INTERNAL",
        category=ErrorCategory.INTERNAL,
        http_status=500,
        message="Internal error",
    )

    @classmethod
    def from_specs(cls, specs: Iterable[tuple[ErrorKind, ErrorSpec]]) -> ErrorCatalog:
        entries: dict[ErrorKind, ErrorSpec] = {}
        for kind, spec in specs:
            if kind in entries:
                raise ValueError(f"duplicate error kind: {kind.value}")
            entries[kind] = spec
        return cls(entries=MappingProxyType(entries))

    def lookup(self, kind: ErrorKind | None) -> ErrorSpec:
        if kind is None:
            return self.internal
        return self.entries.get(kind, self.internal)

    def render(self, error: JobError) -> tuple[int, dict[str, Any]]:
        spec = self.lookup(error.kind)
        return spec.http_status, {
            "code": spec.code,
            "category": spec.category.value,
            "message": error.message or spec.message,
            "details": dict(error.details),
        }


def build_job_error_catalog() -> ErrorCatalog:
    def spec(kind: ErrorKind, category: ErrorCategory, http_status: int, message: str) -> tuple[ErrorKind, ErrorSpec]:
        return kind, ErrorSpec(
            code=f"{ERROR_CODE_PREFIX}.{kind.value}",
            category=category,
            http_status=http_status,
            message=message,
        )

    return ErrorCatalog.from_specs(
        [
            spec(ErrorKind.NOT_FOUND, ErrorCategory.NOT_FOUND, 404, "Job not found"),
            spec(ErrorKind.ALREADY_EXISTS, ErrorCategory.CONFLICT, 409, "Job already exists"),
            spec(ErrorKind.ARCHIVED, ErrorCategory.BUSINESS, 403, "Job is archived"),
            spec(ErrorKind.NOT_ARCHIVED, ErrorCategory.BUSINESS, 400, "Job is not archived"),
            spec(ErrorKind.ALREADY_ARCHIVED, ErrorCategory.BUSINESS, 409, "Job is already archived"),
            spec(ErrorKind.ALREADY_PUBLISHED, ErrorCategory.BUSINESS, 409, "Job is already published"),
            spec(ErrorKind.HAS_APPLICATIONS, ErrorCategory.BUSINESS, 409, "Cannot delete job with applications"),
            spec(ErrorKind.INSUFFICIENT_PERMISSIONS, ErrorCategory.AUTHORIZATION, 403, "Insufficient permissions"),
            spec(ErrorKind.UNAUTHORIZED_UPDATE, ErrorCategory.AUTHORIZATION, 403, "Unauthorized to update this job"),
            spec(ErrorKind.CANNOT_PUBLISH, ErrorCategory.BUSINESS, 400, "Job cannot be published in current state"),
        ]
    )


class JobError(Exception):
    """Base domain failure; subclasses pin the kind. Without one it renders as internal."""

    kind: ErrorKind | None = None
    default_message = "job error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        self.message = message
        self.details: dict[str, Any] = dict(details)
        super().__init__(message or self.default_message)

    def with_detail(self, key: str, value: Any) -> JobError:
        self.details[key] = value
        return self

    def __str__(self) -> str:
        base = self.message or self.default_message
        if not self.details:
            return base
        rendered = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{base} ({rendered})"


class JobNotFoundError(JobError):
    kind = ErrorKind.NOT_FOUND
    default_message = "job not found"


class JobAlreadyExistsError(JobError):
    kind = ErrorKind.ALREADY_EXISTS
    default_message = "job already exists"


class JobArchivedError(JobError):
    kind = ErrorKind.ARCHIVED
    default_message = "job is archived"


class JobNotArchivedError(JobError):
    kind = ErrorKind.NOT_ARCHIVED
    default_message = "job is not archived"


class JobAlreadyArchivedError(JobError):
    kind = ErrorKind.ALREADY_ARCHIVED
    default_message = "job is already archived"


class JobAlreadyPublishedError(JobError):
    kind = ErrorKind.ALREADY_PUBLISHED
    default_message = "job is already published"


class JobHasApplicationsError(JobError):
    kind = ErrorKind.HAS_APPLICATIONS
    default_message = "cannot delete job with applications"


class InsufficientPermissionsError(JobError):
    kind = ErrorKind.INSUFFICIENT_PERMISSIONS
    default_message = "insufficient permissions"


class UnauthorizedUpdateError(JobError):
    kind = ErrorKind.UNAUTHORIZED_UPDATE
    default_message = "unauthorized to update this job"


class CannotPublishError(JobError):
    kind = ErrorKind.CANNOT_PUBLISH
    default_message = "job cannot be published in current state"
