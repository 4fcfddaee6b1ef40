from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from bucketview.config import get_settings
from bucketview.main import create_app
from bucketview.signing import ShareTokenCodec


def build_client(store, monkeypatch, *, max_upload_size_bytes: int = 1000000):
    monkeypatch.setenv("BUCKETVIEW_APP_SECRET_KEY", "test-secret")
    monkeypatch.setenv("BUCKETVIEW_BUCKET_NAME", "test-bucket")
    monkeypatch.setenv("BUCKETVIEW_MAX_UPLOAD_SIZE_BYTES", str(max_upload_size_bytes))
    monkeypatch.setenv("BUCKETVIEW_MAX_SHARE_TTL_SECONDS", "3600")
    get_settings.cache_clear()

    app = create_app(store=store)
    return TestClient(app)


def upload(client, name, content=b"hello world", path=""):
    return client.post(
        "/v1/files/upload",
        data={"path": path},
        files={"file": (name, content, "text/plain")},
    )


def test_lifespan_initializes_store(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        assert store.initialized
        assert client.get("/health").json()["status"] == "ok"


def test_upload_and_list_folders(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        response = upload(client, "hello.txt", path="docs")
        assert response.status_code == 201
        assert response.json() == {"key": "docs/hello.txt", "size": 11, "content_type": "text/plain"}
        upload(client, "top.txt")
        upload(client, "deep.txt", path="docs/sub/")

        root = client.get("/v1/files").json()
        assert root["path"] == ""
        assert root["parent"] is None
        assert [f["key"] for f in root["files"]] == ["top.txt"]
        assert root["folders"] == ["docs/"]

        docs = client.get("/v1/files", params={"path": "docs"}).json()
        assert docs["path"] == "docs/"
        assert docs["parent"] == ""
        assert [f["key"] for f in docs["files"]] == ["docs/hello.txt"]
        assert docs["folders"] == ["docs/sub/"]


def test_create_and_delete_folder(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        created = client.post("/v1/folders", data={"name": "photos", "path": ""})
        assert created.status_code == 201
        assert created.json() == {"success": True, "key": "photos/"}
        upload(client, "cat.jpg", path="photos/")

        listing = client.get("/v1/files", params={"path": "photos/"}).json()
        assert [f["key"] for f in listing["files"]] == ["photos/cat.jpg"]

        deleted = client.post("/v1/folders/delete", data={"prefix": "photos"})
        assert deleted.status_code == 200
        assert store.objects == {}


def test_download_delete_and_move(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "note.txt", b"private data")

        download = client.get("/v1/files/download", params={"key": "note.txt"})
        assert download.status_code == 200
        assert download.content == b"private data"
        assert download.headers["content-type"].startswith("text/plain")
        assert "note.txt" in download.headers["content-disposition"]

        moved = client.post("/v1/files/move", data={"source": "note.txt", "destination": "archive/note.txt"})
        assert moved.json() == {"success": True, "key": "archive/note.txt"}

        missing = client.get("/v1/files/download", params={"key": "note.txt"})
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "not_found"

        deleted = client.post("/v1/files/delete", data={"key": "archive/note.txt"})
        assert deleted.status_code == 200
        assert store.objects == {}


def test_trash_and_restore(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "note.txt", path="docs")

        trashed = client.post("/v1/files/trash", data={"key": "docs/note.txt"})
        assert trashed.json() == {"success": True, "key": ".trash/docs/note.txt"}
        assert client.get("/v1/files", params={"path": "docs"}).json()["files"] == []

        restored = client.post("/v1/files/restore", data={"key": ".trash/docs/note.txt"})
        assert restored.json() == {"success": True, "key": "docs/note.txt"}

        not_trashed = client.post("/v1/files/restore", data={"key": "docs/note.txt"})
        assert not_trashed.status_code == 400
        assert not_trashed.json()["error"]["code"] == "bad_request"


def test_share_link_download(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "report.pdf", b"pdf-bytes")

        share = client.post("/v1/share", data={"key": "report.pdf", "expiry_seconds": 600})
        assert share.status_code == 200
        body = share.json()
        assert body["success"] is True
        assert "/v1/share/download?token=" in body["url"]

        download = client.get(body["url"])
        assert download.status_code == 200
        assert download.content == b"pdf-bytes"


def test_share_missing_object_reports_failure(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        share = client.post("/v1/share", data={"key": "missing.pdf", "expiry_seconds": 600})
        assert share.status_code == 404
        assert share.json() == {"success": False, "url": "", "expires_at": None}


def test_share_rejects_ttl_above_maximum(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "report.pdf")
        share = client.post("/v1/share", data={"key": "report.pdf", "expiry_seconds": 3601})
        assert share.status_code == 400
        assert share.json() == {"success": False, "url": "", "expires_at": None}


def test_share_rejects_key_with_separator(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "a|b.txt")
        share = client.post("/v1/share", data={"key": "a|b.txt", "expiry_seconds": 600})
        assert share.status_code == 400
        assert share.json() == {"success": False, "url": "", "expires_at": None}


def test_shared_download_rejections_look_the_same(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        upload(client, "report.pdf")
        share = client.post("/v1/share", data={"key": "report.pdf", "expiry_seconds": 600}).json()
        token = parse_qs(urlparse(share["url"]).query)["token"][0]

        expired = ShareTokenCodec("test-secret").encode("report.pdf", 1, now=1)
        forged = ShareTokenCodec("other-secret").encode("report.pdf", 600)
        store.objects["gone.pdf"] = store.objects["report.pdf"]
        gone = client.post("/v1/share", data={"key": "gone.pdf"}).json()
        del store.objects["gone.pdf"]
        gone_token = parse_qs(urlparse(gone["url"]).query)["token"][0]

        bodies = []
        for candidate in ["garbage", expired, forged, gone_token, ""]:
            response = client.get("/v1/share/download", params={"token": candidate})
            assert response.status_code == 404
            bodies.append(response.json())
        assert all(body == {"error": {"code": "not_found", "message": "not found"}} for body in bodies)

        assert client.get("/v1/share/download", params={"token": token}).status_code == 200


def test_upload_rejects_payload_too_large(store, monkeypatch):
    client = build_client(store, monkeypatch, max_upload_size_bytes=10)
    with client:
        huge = upload(client, "huge.bin", b"a" * 11)
        assert huge.status_code == 413
        assert huge.json()["error"]["code"] == "payload_too_large"
        assert store.objects == {}


def test_missing_required_parameter_returns_bad_request(store, monkeypatch):
    client = build_client(store, monkeypatch)
    with client:
        missing = client.post("/v1/files/delete", data={})
        assert missing.status_code == 400
        body = missing.json()
        assert body["error"]["code"] == "bad_request"
        assert "missing parameters" in body["error"]["message"]
