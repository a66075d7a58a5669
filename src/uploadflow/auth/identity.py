"""Session identity resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from ..ingest.ingest_errors import UnauthorizedError

logger = structlog.get_logger(__name__)

IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9-]{10,}$")
UNSAFE_SEGMENTS = frozenset({"", ".", ".."})


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated uploader as read from the session cookies."""

    user_id: str
    username: str

    @property
    def display_name(self) -> str:
        return self.username or self.user_id


def resolve_identity(
    user_id: str | None, username: str | None, logged_in: str | None
) -> Identity:
    """Validate cookie values and build an :class:`Identity`.

    The session cookies are issued elsewhere; only their shape is checked here.
    """
    if logged_in != "true" or not user_id:
        logger.info("auth.identity.missing", has_user=bool(user_id), logged_in=logged_in)
        raise UnauthorizedError("not authenticated")
    if not IDENTITY_PATTERN.fullmatch(user_id):
        logger.warning("auth.identity.malformed", user_id_length=len(user_id))
        raise UnauthorizedError("malformed identity")
    return Identity(user_id=user_id, username=(username or "").strip())


def path_in_scope(path: str, owner_id: str) -> bool:
    """Return True when ``owner_id`` is a directory segment of a normalized ``path``.

    Absolute paths, backslashes and empty, ``.`` or ``..`` segments never match.
    """
    if not path or not owner_id or path.startswith("/") or "\\" in path:
        return False
    segments = path.split("/")
    if any(segment in UNSAFE_SEGMENTS for segment in segments):
        return False
    return owner_id in segments[:-1]


__all__ = ["IDENTITY_PATTERN", "Identity", "path_in_scope", "resolve_identity"]
