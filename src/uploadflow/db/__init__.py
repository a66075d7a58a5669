"""Catalog database models and bootstrap helpers."""

from .db_init import init_db
from .db_models import Base, MediaModel, TagModel

__all__ = ["Base", "MediaModel", "TagModel", "init_db"]
