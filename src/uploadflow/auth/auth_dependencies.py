"""Common authentication dependencies for FastAPI routers."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..ingest.ingest_errors import UnauthorizedError
from .identity import Identity, resolve_identity


def require_identity(request: Request) -> Identity:
    cookies = request.cookies
    try:
        return resolve_identity(
            cookies.get("userId"), cookies.get("username"), cookies.get("isLoggedIn")
        )
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Not authenticated", "failure_reason": exc.failure_reason},
        ) from exc


__all__ = ["require_identity"]
