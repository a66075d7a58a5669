from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.uploadflow.dependencies import include_routers
from src.uploadflow.storage.local_storage import LocalStorageClient
from tests.conftest import AUTH_COOKIES, USER_ID
from tests.mocks.storage import InMemoryStorage


def build_client(config, storage, *, authenticated: bool = True) -> TestClient:
    app = FastAPI()
    include_routers(app, config, storage=storage)
    return TestClient(app, cookies=AUTH_COOKIES if authenticated else None)


def local_storage(config) -> LocalStorageClient:
    return LocalStorageClient(
        root=config.storage.local_root,
        signing_key=config.storage.signing_key,
        public_base_url="http://testserver",
    )


def test_create_upload_returns_signed_target(app_config) -> None:
    client = build_client(app_config, InMemoryStorage())

    response = client.post("/api/uploads/create", json={"kind": "video", "filename": "clip.mov"})

    assert response.status_code == 200
    body = response.json()
    assert body["bucket"] == "media"
    assert body["path"].startswith(f"videos/{USER_ID}/")
    assert body["path"].endswith(".mp4")
    assert body["projectRef"] == "test"
    assert body["uploadUrl"].endswith("?token=signed-token")
    assert body["resumableUrl"] is None


def test_create_upload_staging_and_watermark(app_config) -> None:
    client = build_client(app_config, InMemoryStorage())

    staged = client.post(
        "/api/uploads/create", json={"kind": "video", "filename": "a.mp4", "staging": True}
    ).json()
    watermark = client.post("/api/uploads/create", json={"kind": "watermark"}).json()

    assert staged["bucket"] == "uploads-staging"
    assert watermark["bucket"] == "uploads-staging"
    assert watermark["path"].startswith(f"wm/{USER_ID}/")


def test_create_upload_errors(app_config) -> None:
    storage = InMemoryStorage()
    anonymous = build_client(app_config, storage, authenticated=False)
    assert anonymous.post("/api/uploads/create", json={"kind": "image"}).status_code == 401

    client = build_client(app_config, storage)
    assert client.post("/api/uploads/create", json={"kind": "audio"}).status_code == 422

    storage.fail_sign = True
    response = client.post("/api/uploads/create", json={"kind": "image", "filename": "a.jpg"})
    assert response.status_code == 400
    assert response.json()["detail"]["failure_reason"] == "sign_upload_failed"


def test_local_sink_accepts_signed_put(app_config) -> None:
    storage = local_storage(app_config)
    client = build_client(app_config, storage)

    signed = client.post(
        "/api/uploads/create", json={"kind": "image", "filename": "cat.PNG"}
    ).json()
    response = client.put(
        signed["uploadUrl"], content=b"png-bytes", headers={"Content-Type": "image/png"}
    )

    assert response.status_code == 200
    assert response.json() == {"Key": f"media/{signed['path']}"}
    assert signed["path"].endswith(".png")
    assert storage.resolve("media", signed["path"]).read_bytes() == b"png-bytes"

    # objects are write-once
    again = client.put(signed["uploadUrl"], content=b"other")
    assert again.status_code == 409


def test_local_sink_rejects_bad_token(app_config) -> None:
    storage = local_storage(app_config)
    client = build_client(app_config, storage)

    response = client.put(
        f"/api/uploads/local/media/images/{USER_ID}/a.jpg", params={"token": "1.deadbeef"}, content=b"x"
    )

    assert response.status_code == 403
    assert response.json()["detail"]["failure_reason"] == "forbidden"


def test_local_sink_is_absent_for_remote_storage(app_config) -> None:
    client = build_client(app_config, InMemoryStorage())

    response = client.put("/api/uploads/local/media/a.jpg", params={"token": "t"}, content=b"x")

    assert response.status_code == 404
