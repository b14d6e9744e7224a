"""
Request-scoped access to the process runtime.

The runtime is built once in the application lifespan and installed here.
Routes depend on the accessors below so tests can substitute their own
components through `app.dependency_overrides`.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..indexing.update import UpdateService
from ..runtime import Runtime
from ..search.engine import SearchEngine

_runtime: Optional[Runtime] = None


def set_runtime(runtime: Optional[Runtime]) -> None:
    global _runtime
    _runtime = runtime


def get_runtime() -> Runtime:
    if _runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return _runtime


def get_search_engine(runtime: Runtime = Depends(get_runtime)) -> SearchEngine:
    return runtime.search_engine


def get_update_service(runtime: Runtime = Depends(get_runtime)) -> UpdateService:
    return runtime.update_service


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

def check_admin_key(runtime: Runtime, provided_key: Optional[str]) -> None:
    """
    Require the configured admin key on mutating operations.

    When no ADMIN_API_KEY is configured the check is disabled, matching a
    single-user local deployment.
    """
    admin_key = runtime.settings.admin_api_key
    expected_key = admin_key.get_secret_value() if admin_key else None

    if not expected_key:
        return

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key",
        )


async def verify_admin(
    runtime: Runtime = Depends(get_runtime),
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
) -> None:
    check_admin_key(runtime, x_admin_key)
