from __future__ import annotations

import pytest

from src.uploadflow.auth.identity import Identity, path_in_scope, resolve_identity
from src.uploadflow.ingest.ingest_errors import UnauthorizedError


def test_resolve_identity_accepts_logged_in_user() -> None:
    identity = resolve_identity("u-alice-0001", " alice ", "true")

    assert identity == Identity(user_id="u-alice-0001", username="alice")
    assert identity.display_name == "alice"
    assert resolve_identity("u-alice-0001", None, "true").display_name == "u-alice-0001"


@pytest.mark.parametrize(
    ("user_id", "logged_in"),
    [
        (None, "true"),
        ("", "true"),
        ("u-alice-0001", None),
        ("u-alice-0001", "false"),
        ("short", "true"),
        ("../../etc/passwd", "true"),
        ("u_alice_0001", "true"),
    ],
)
def test_resolve_identity_rejects(user_id, logged_in) -> None:
    with pytest.raises(UnauthorizedError):
        resolve_identity(user_id, "alice", logged_in)


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("videos/u-alice-0001/a.mp4", True),
        ("wm/u-alice-0001/a.png", True),
        ("/wm/u-alice-0001/a.png", False),
        ("u-alice-0001/a.png", True),
        ("videos/u-alice-00011/a.mp4", False),
        ("videos/xu-alice-0001/a.mp4", False),
        ("videos/a.mp4", False),
        ("videos/u-alice-0001/../../videos/u-bob-000001/x.mp4", False),
        ("videos/u-alice-0001/./x.mp4", False),
        ("videos//u-alice-0001/x.mp4", False),
        ("videos\\u-alice-0001\\x.mp4", False),
        ("videos/x/u-alice-0001", False),
        ("", False),
    ],
)
def test_path_in_scope(path, expected) -> None:
    assert path_in_scope(path, "u-alice-0001") is expected
