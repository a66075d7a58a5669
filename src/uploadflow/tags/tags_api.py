"""HTTP routes for tag suggestions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel

from ..auth.auth_dependencies import require_identity
from ..auth.identity import Identity
from ..exceptions import RepositoryError
from ..repositories.tag_repository import DEFAULT_SUGGESTION_LIMIT, TagRepository

router = APIRouter(prefix="/api/tags", tags=["tags"])
logger = logging.getLogger(__name__)


class TagCreateRequest(BaseModel):
    label: str


class TagSchema(BaseModel):
    label: str
    slug: str


class TagResponse(BaseModel):
    tag: TagSchema


class TagListResponse(BaseModel):
    tags: list[str]


def get_tag_repo(request: Request) -> TagRepository:
    try:
        return request.app.state.tag_repo  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("TagRepository is not configured") from exc


@router.get("", response_model=TagListResponse)
def list_tags(
    q: str = Query(""),
    limit: int = Query(DEFAULT_SUGGESTION_LIMIT, ge=1, le=200),
    repo: TagRepository = Depends(get_tag_repo),
) -> TagListResponse:
    return TagListResponse(tags=repo.suggest_tags(q, limit))


@router.post("", response_model=TagResponse)
def create_tag(
    body: TagCreateRequest,
    _: Identity = Depends(require_identity),
    repo: TagRepository = Depends(get_tag_repo),
) -> TagResponse:
    try:
        tag = repo.ensure_tag(body.label)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Tag label is empty", "failure_reason": "invalid_input"},
        ) from exc
    except RepositoryError as exc:
        logger.error("tags.ensure.failed", extra={"label": body.label, "error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Failed to save tag", "failure_reason": "catalog_write_failed"},
        ) from exc
    return TagResponse(tag=TagSchema(label=tag.label, slug=tag.slug))
