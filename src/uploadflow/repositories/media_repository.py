"""Persistence layer for published media rows."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import MediaModel
from ..exceptions import ensure_found, handle_sqlalchemy_errors
from ..media.media_models import Audience, MediaRecord, MediaType
from ..media.text import MAX_TAGS


class MediaRepository:
    """Insert-only access to the ``media`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(self, record: MediaRecord) -> MediaRecord:
        with handle_sqlalchemy_errors(entity="media"):
            with self._session_factory() as session:
                session.add(
                    MediaModel(
                        id=record.id,
                        owner_id=record.owner_id,
                        media_type=record.media_type.value,
                        audience=record.audience.value,
                        title=record.title,
                        description=record.description,
                        storage_path=record.storage_path,
                        duration_seconds=record.duration_seconds,
                        width=record.width,
                        height=record.height,
                        tags=list(record.tags)[:MAX_TAGS],
                        created_at=record.created_at,
                    )
                )
                session.commit()
        return record

    def get(self, media_id: str) -> MediaRecord:
        with handle_sqlalchemy_errors(entity="media"):
            with self._session_factory() as session:
                model = ensure_found(
                    session.get(MediaModel, media_id), entity="Media", identifier=media_id
                )
                return self._to_domain(model)

    def list_by_owner(self, owner_id: str) -> list[MediaRecord]:
        with handle_sqlalchemy_errors(entity="media"):
            with self._session_factory() as session:
                rows = session.scalars(
                    select(MediaModel)
                    .where(MediaModel.owner_id == owner_id)
                    .order_by(MediaModel.created_at)
                ).all()
                return [self._to_domain(row) for row in rows]

    def known_storage_paths(self, paths: Iterable[str]) -> set[str]:
        """Return the subset of ``paths`` referenced by some media row."""
        candidates = list(paths)
        if not candidates:
            return set()
        with handle_sqlalchemy_errors(entity="media"):
            with self._session_factory() as session:
                found: set[str] = set()
                # keep IN lists small for SQLite
                for start in range(0, len(candidates), 500):
                    chunk = candidates[start : start + 500]
                    found.update(
                        session.scalars(
                            select(MediaModel.storage_path).where(
                                MediaModel.storage_path.in_(chunk)
                            )
                        ).all()
                    )
                return found

    @staticmethod
    def _to_domain(model: MediaModel) -> MediaRecord:
        return MediaRecord(
            id=model.id,
            owner_id=model.owner_id,
            media_type=MediaType(model.media_type),
            audience=Audience(model.audience),
            storage_path=model.storage_path,
            created_at=model.created_at,
            title=model.title,
            description=model.description,
            duration_seconds=model.duration_seconds,
            width=model.width,
            height=model.height,
            tags=list(model.tags or []),
        )
