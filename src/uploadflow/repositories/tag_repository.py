"""Persistence layer for tag suggestions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.db_models import TagModel
from ..exceptions import handle_sqlalchemy_errors
from ..media.media_models import Tag, utcnow
from ..media.text import slugify, to_title_case

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 50


class TagRepository:
    """Manage rows of the ``tags`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def ensure_tag(self, label: str) -> Tag:
        """Return the tag for ``label``, inserting it on first use."""
        clean = to_title_case(label)
        slug = slugify(clean)
        if not slug:
            raise ValueError("tag label is empty")

        with handle_sqlalchemy_errors(entity="tag"):
            with self._session_factory() as session:
                existing = session.get(TagModel, slug)
                if existing is not None:
                    return self._to_domain(existing)
                model = TagModel(slug=slug, label=clean, created_at=utcnow())
                session.add(model)
                try:
                    session.commit()
                except IntegrityError:
                    # lost an insert race; the other writer's row wins
                    session.rollback()
                    logger.info("tags.ensure.conflict", extra={"slug": slug})
                    winner = session.get(TagModel, slug)
                    if winner is None:
                        raise
                    return self._to_domain(winner)
                return self._to_domain(model)

    def suggest_tags(self, query: str = "", limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[str]:
        """Most recent labels for an empty query, else substring matches ordered by label."""
        q = query.strip()
        stmt = select(TagModel.label)
        if q:
            stmt = stmt.where(func.lower(TagModel.label).contains(q.lower())).order_by(
                TagModel.label
            )
        else:
            stmt = stmt.order_by(TagModel.created_at.desc(), TagModel.label)
        with handle_sqlalchemy_errors(entity="tag"):
            with self._session_factory() as session:
                labels = session.scalars(stmt.limit(limit)).all()

        seen: set[str] = set()
        result: list[str] = []
        for raw in labels:
            label = to_title_case(raw)
            if label.lower() in seen:
                continue
            seen.add(label.lower())
            result.append(label)
        return result

    @staticmethod
    def _to_domain(model: TagModel) -> Tag:
        return Tag(slug=model.slug, label=model.label, created_at=model.created_at)
