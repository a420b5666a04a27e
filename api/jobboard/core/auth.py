from dataclasses import dataclass, field

SCOPE_ALL = "*"
SCOPE_JOBS_ALL = "jobs:*"
SCOPE_JOBS_READ = "jobs:read"
SCOPE_JOBS_WRITE = "jobs:write"
SCOPE_JOBS_DELETE = "jobs:delete"
SCOPE_JOBS_PUBLISH = "jobs:publish"
SCOPE_JOBS_ARCHIVE = "jobs:archive"


@dataclass(slots=True)
class Principal:
    subject: str
    scopes: set[str] = field(default_factory=set)
    role: str | None = None
    actor_id: str | None = None
    tenant_id: str | None = None

    @property
    def identity(self) -> str:
        return self.actor_id or self.subject

    def has_any_scope(self, *candidates: str) -> bool:
        if SCOPE_ALL in self.scopes:
            return True
        return any(scope in self.scopes for scope in candidates)

    def require_scopes(self, required: set[str]) -> None:
        if SCOPE_ALL in self.scopes:
            return
        missing = {scope for scope in required if scope not in self.scopes and not self._covered_by_wildcard(scope)}
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")

    def _covered_by_wildcard(self, scope: str) -> bool:
        namespace, _, _ = scope.partition(":")
        return f"{namespace}:*" in self.scopes


def parse_scope_header(scope_header: str | None) -> set[str]:
    if not scope_header:
        return set()
    return {chunk.strip() for chunk in scope_header.split(",") if chunk.strip()}
