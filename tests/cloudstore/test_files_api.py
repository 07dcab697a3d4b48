"""文件与照片接口的集成测试。"""

import uuid
from io import BytesIO

from fastapi import UploadFile
from fastapi.testclient import TestClient

from app.packages.cloudstore.api.v1.endpoints.files import _to_item
from app.packages.cloudstore.crud.users import user_crud
from app.packages.cloudstore.services.container import get_container


def _register_and_login(client: TestClient) -> tuple[dict[str, str], int]:
    email = f"api_{uuid.uuid4().hex[:10]}@example.com"
    register = client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": "Api Tester", "password": "secret123"},
    )
    assert register.status_code == 200
    user_id = register.json()["data"]["id"]

    login = client.post("/api/v1/auth/login", json={"email": email, "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}, user_id


def _upload(client: TestClient, headers, name: str, content: bytes, **form):
    return client.post(
        "/api/v1/files/upload",
        headers=headers,
        files={"file": (name, content, "application/octet-stream")},
        data=form,
    )


def test_register_duplicate_email_returns_409(client: TestClient):
    payload = {"email": f"dup_{uuid.uuid4().hex[:8]}@example.com", "name": "dup", "password": "secret123"}
    assert client.post("/api/v1/auth/register", json=payload).status_code == 200

    response = client.post("/api/v1/auth/register", json=payload)

    assert response.status_code == 409
    assert response.json()["code"] == 409


def test_login_with_wrong_password_returns_401(client: TestClient):
    email = f"pw_{uuid.uuid4().hex[:8]}@example.com"
    client.post("/api/v1/auth/register", json={"email": email, "name": "pw", "password": "secret123"})

    response = client.post("/api/v1/auth/login", json={"email": email, "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json()["msg"] == "邮箱或密码错误"


def test_files_require_authentication(client: TestClient):
    response = client.get("/api/v1/files")

    assert response.status_code == 401
    assert response.json()["code"] == 401


def test_upload_list_download_and_delete_flow(client: TestClient, make_jpeg):
    headers, user_id = _register_and_login(client)
    content = make_jpeg(taken="2022:08:15 12:00:00", make="Apple", model="iPhone 15")

    upload = _upload(client, headers, "beach.jpg", content)
    assert upload.status_code == 200
    assert upload.headers.get("X-Request-ID")
    file_view = upload.json()["data"]
    file_id = file_view["id"]
    assert file_view["name"] == "beach.jpg"
    assert file_view["type"] == "image"
    assert file_view["size"] == len(content)
    assert file_view["thumbnailUrl"] == f"/api/v1/files/{file_id}/thumbnail"

    listing = client.get("/api/v1/files", headers=headers, params={"type": "image"})
    assert [item["id"] for item in listing.json()["data"]] == [file_id]

    download = client.get(f"/api/v1/files/{file_id}/download", headers=headers)
    assert download.status_code == 200
    assert download.content == content

    thumbnail = client.get(f"/api/v1/files/{file_id}/thumbnail", headers=headers)
    assert thumbnail.status_code == 200

    metadata = client.get(f"/api/v1/files/{file_id}/metadata", headers=headers).json()["data"]
    assert metadata["camera"] == "Apple iPhone 15"
    assert metadata["resolution"] == "640x480"
    assert metadata["dateTaken"].startswith("2022-08-15T12:00:00")
    assert metadata["organized"] is False

    me = client.get("/api/v1/auth/me", headers=headers).json()["data"]
    assert me["id"] == user_id
    assert me["storageUsed"] == len(content)

    delete = client.delete(f"/api/v1/files/{file_id}", headers=headers)
    assert delete.status_code == 200
    assert delete.json()["data"]["releasedBytes"] == len(content)

    me_after = client.get("/api/v1/auth/me", headers=headers).json()["data"]
    assert me_after["storageUsed"] == 0
    missing = client.get(f"/api/v1/files/{file_id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["data"]["kind"] == "not_found"


def test_download_missing_blob_returns_404(client: TestClient):
    headers, _ = _register_and_login(client)
    file_id = _upload(client, headers, "notes.txt", b"hello").json()["data"]["id"]
    record_path = client.get(f"/api/v1/files/{file_id}", headers=headers).json()["data"]["path"]
    get_container().blob_store.delete(record_path)

    response = client.get(f"/api/v1/files/{file_id}/download", headers=headers)

    assert response.status_code == 404


def test_metadata_of_non_image_is_rejected(client: TestClient):
    headers, _ = _register_and_login(client)
    file_id = _upload(client, headers, "report.pdf", b"%PDF-1.4").json()["data"]["id"]

    response = client.get(f"/api/v1/files/{file_id}/metadata", headers=headers)

    assert response.status_code == 400
    assert response.json()["data"]["kind"] == "not_an_image"


def test_upload_over_quota_is_rejected(client: TestClient, db_session_fixture):
    headers, user_id = _register_and_login(client)
    user = user_crud.get(db_session_fixture, user_id)
    user.storage_limit = 10
    user_crud.save(db_session_fixture, user)

    response = _upload(client, headers, "big.bin", b"x" * 11)

    assert response.status_code == 400
    assert response.json()["data"]["kind"] == "over_quota"
    assert client.get("/api/v1/files", headers=headers).json()["data"] == []
    assert not get_container().blob_store.user_dir(user_id).exists()


def test_declared_type_applies_to_unknown_extensions(client: TestClient):
    headers, _ = _register_and_login(client)

    response = _upload(client, headers, "recording", b"RIFF", type="audio")

    assert response.json()["data"]["type"] == "audio"


def test_batch_upload_with_auto_organize(client: TestClient, make_jpeg):
    headers, user_id = _register_and_login(client)
    files = [
        ("files", ("one.jpg", make_jpeg(taken="2020:01:01 08:00:00"), "image/jpeg")),
        ("files", ("two.jpg", make_jpeg(taken="2020:01:02 08:00:00"), "image/jpeg")),
        ("files", ("readme.md", b"# hi", "text/markdown")),
    ]

    response = client.post(
        "/api/v1/files/batch-upload",
        headers=headers,
        files=files,
        data={"autoOrganize": "true"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["succeeded"]) == 3
    assert data["failedCount"] == 0
    assert data["organizeScheduled"] is True

    # TestClient 在响应之后同步执行后台任务
    organized_root = get_container().blob_store.organized_dir(user_id)
    assert (organized_root / "2020" / "01" / "01" / "one.jpg").is_file()
    assert (organized_root / "2020" / "01" / "02" / "two.jpg").is_file()

    summary = {item["type"]: item for item in client.get("/api/v1/files/summary/types", headers=headers).json()["data"]}
    assert summary["image"]["count"] == 2
    assert summary["document"]["count"] == 1

    organize = client.post("/api/v1/files/photos/organize", headers=headers).json()["data"]
    assert organize == {"organizedCount": 0, "failedCount": 0, "totalCount": 2, "skippedCount": 2}


def test_batch_upload_rejects_too_many_files(client: TestClient):
    headers, _ = _register_and_login(client)
    limit = get_container().settings.max_batch_files
    files = [("files", (f"f{i}.txt", b"x", "text/plain")) for i in range(limit + 1)]

    response = client.post("/api/v1/files/batch-upload", headers=headers, files=files)

    assert response.status_code == 400
    assert response.json()["data"]["kind"] == "too_many_files"


def test_photo_views_and_sync_status(client: TestClient, make_jpeg):
    headers, _ = _register_and_login(client)
    _upload(client, headers, "old.jpg", make_jpeg(taken="2018:05:05 10:00:00"))
    _upload(client, headers, "new.jpg", make_jpeg(taken="2024:06:06 10:00:00"))
    _upload(client, headers, "doc.txt", b"text")

    by_date = client.get("/api/v1/files/photos/by-date", headers=headers).json()["data"]
    assert [group["date"] for group in by_date] == ["2024-06-06", "2018-05-05"]
    assert by_date[0]["photos"][0]["name"] == "new.jpg"

    gallery = client.get("/api/v1/files/photos/gallery", headers=headers, params={"page": 1, "pageSize": 1}).json()["data"]
    assert gallery["total"] == 2
    assert len(gallery["items"]) == 1
    assert gallery["items"][0]["thumbnailUrl"]

    status = client.get("/api/v1/files/sync/status", headers=headers).json()["data"]
    assert status["totalFiles"] == 3
    assert status["imageCount"] == 2
    assert status["newSince"] is None
    assert status["diskUsage"] >= status["storageUsed"] > 0
    assert status["lastUploadAt"]


def test_upload_items_read_at_most_one_byte_past_the_limit():
    reported = _to_item(UploadFile(file=BytesIO(b"x" * 64), filename="big.bin", size=64), 16)
    assert reported.content == b""
    assert reported.size == 64

    unreported = _to_item(UploadFile(file=BytesIO(b"x" * 64), filename="big.bin"), 16)
    assert len(unreported.content) == 17
    assert unreported.size > 16

    small = _to_item(UploadFile(file=BytesIO(b"hello"), filename="a.txt", size=5), 16, "document")
    assert (small.content, small.size, small.declared_type) == (b"hello", 5, "document")


def test_upload_over_size_limit_returns_413(client: TestClient, monkeypatch):
    headers, user_id = _register_and_login(client)
    monkeypatch.setattr(get_container().ingestion, "max_upload_size", 16)

    response = _upload(client, headers, "big.bin", b"x" * 64)

    assert response.status_code == 413
    assert response.json()["data"]["kind"] == "file_too_large"
    assert not get_container().blob_store.user_dir(user_id).exists()
