from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from jobboard.core.auth import (
    SCOPE_ALL,
    SCOPE_JOBS_ALL,
    SCOPE_JOBS_ARCHIVE,
    SCOPE_JOBS_DELETE,
    SCOPE_JOBS_PUBLISH,
    SCOPE_JOBS_READ,
    SCOPE_JOBS_WRITE,
    Principal,
    parse_scope_header,
)
from jobboard.core.config import Settings, get_settings

ROLE_SCOPES: dict[str, set[str]] = {
    "viewer": {SCOPE_JOBS_READ},
    "recruiter": {SCOPE_JOBS_READ, SCOPE_JOBS_WRITE},
    "hiring_manager": {SCOPE_JOBS_READ, SCOPE_JOBS_WRITE, SCOPE_JOBS_PUBLISH, SCOPE_JOBS_ARCHIVE, SCOPE_JOBS_DELETE},
    "admin": {SCOPE_JOBS_ALL},
    "owner": {SCOPE_ALL},
}


async def get_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.auth_url:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth is not configured",
        )

    user = await _fetch_auth_user(
        auth_url=settings.auth_url,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role = _resolve_role(user)
    tenant_id = user.get("tenant_id")

    return Principal(
        subject=user_id,
        role=role,
        scopes=_resolve_scopes(user, role),
        actor_id=user_id,
        tenant_id=tenant_id if isinstance(tenant_id, str) and tenant_id else None,
    )


def require_scope(scope: str):
    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        try:
            principal.require_scopes({scope})
        except PermissionError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        return principal

    return dependency


async def _fetch_auth_user(
    *,
    auth_url: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{auth_url.rstrip('/')}/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="auth verification failed",
        )

    return response.json()


def _resolve_role(user: dict[str, Any]) -> str:
    role = user.get("role")
    if isinstance(role, str) and role in ROLE_SCOPES:
        return role
    return "viewer"


def _resolve_scopes(user: dict[str, Any], role: str) -> set[str]:
    scopes = set(ROLE_SCOPES.get(role, ROLE_SCOPES["viewer"]))
    granted = user.get("scopes")
    if isinstance(granted, str):
        scopes |= parse_scope_header(granted)
    elif isinstance(granted, list):
        scopes |= {item.strip() for item in granted if isinstance(item, str) and item.strip()}
    return scopes
