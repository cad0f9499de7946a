"""API tests with TestClient: pads, access gate, files, security log, summarize."""

import uuid
from datetime import datetime, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from securepad.config import get_settings
from securepad.db.session import get_session, utcnow
from securepad.files.models import FileAttachment
from securepad.main import app
from securepad.summarize import Summarizer

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PDF = b"%PDF-1.4\n%test document\n"
LONG_NOTE = "Groceries for the week: apples, oats, coffee, lentils, spinach and tea."


@pytest.fixture
def client(dispatcher):
    """TestClient as context manager so lifespan runs; alerts are recorded instead of mailed."""
    with TestClient(app) as c:
        app.state.dispatcher = dispatcher
        yield c


def _slug() -> str:
    return "pad-" + uuid.uuid4().hex[:12]


def _create(client, slug, password="secret1", public=False, **extra):
    body = {"urlName": slug, "password": password, "isPublic": public}
    body.update(extra)
    r = client.post("/api/create-pad", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def _upload(client, slug, password="secret1", name="photo.png", data=PNG, mime="image/png"):
    return client.post(
        f"/api/upload/{slug}",
        files={"file": (name, data, mime)},
        data={"password": password},
    )


def test_health(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_create_and_exists(client: TestClient) -> None:
    slug = _slug()
    assert client.get(f"/api/check-url/{slug}").json() == {"available": True}
    assert client.get(f"/api/pad/{slug}/exists").json() == {"exists": False}
    assert _create(client, slug) == {"success": True, "urlName": slug, "isPublic": False}
    assert client.get(f"/api/check-url/{slug}").json()["available"] is False
    assert client.get(f"/api/pad/{slug}/exists").json() == {"exists": True, "isPublic": False}


def test_create_duplicate_conflict(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    r = client.post("/api/create-pad", json={"urlName": slug, "password": "other-pass"})
    assert r.status_code == 409


def test_create_validation(client: TestClient) -> None:
    """Bad slug and short password are 400; a malformed alert email is 422."""
    assert client.post("/api/create-pad", json={"urlName": "a b", "password": "secret1"}).status_code == 400
    assert client.post("/api/create-pad", json={"urlName": _slug(), "password": "abc"}).status_code == 400
    r = client.post(
        "/api/create-pad", json={"urlName": _slug(), "password": "secret1", "alertEmail": "not-an-email"}
    )
    assert r.status_code == 422
    r = client.get("/api/check-url/ab")
    assert r.json()["available"] is False


def test_get_and_save_private_pad(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    r = client.post(f"/api/pad/{slug}/save", json={"password": "secret1", "content": "hello world"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    r = client.post(f"/api/pad/{slug}/get", json={"password": "secret1"})
    assert r.status_code == 200
    data = r.json()
    assert data["content"] == "hello world"
    assert data["isPublic"] is False
    assert data["files"] == []


def test_wrong_password_401_missing_pad_404(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    r = client.post(f"/api/pad/{slug}/get", json={"password": "wrong"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Incorrect password"
    r = client.post(f"/api/pad/{slug}/save", json={"password": "wrong", "content": "defaced"})
    assert r.status_code == 401
    assert client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).json()["content"] == ""
    r = client.post(f"/api/pad/{_slug()}/get", json={"password": "x"})
    assert r.status_code == 404
    assert r.json()["detail"] == "Note not found"


def test_public_pad_any_password(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug, password="", public=True)
    assert client.post(f"/api/pad/{slug}/save", json={"content": "shared"}).status_code == 200
    for password in ("", "anything", "x" * 300):
        r = client.post(f"/api/pad/{slug}/get", json={"password": password})
        assert r.status_code == 200
        assert r.json()["content"] == "shared"


def test_brute_force_logged_and_alerted(client: TestClient, dispatcher) -> None:
    """Five wrong passwords: all 401, one brute_force event, one alert to the owner."""
    slug = _slug()
    _create(client, slug, alertEmail="owner@example.com")
    for _ in range(5):
        assert client.post(f"/api/pad/{slug}/get", json={"password": "guess"}).status_code == 401
    r = client.post(f"/api/pad/{slug}/security-logs", json={"password": "secret1"})
    assert r.status_code == 200
    kinds = [e["eventType"] for e in r.json()]
    assert kinds.count("login_failed") == 5
    assert kinds.count("brute_force") == 1
    assert kinds[0] == "note_accessed"
    assert len(dispatcher.of_type("brute_force")) == 1
    # The owner still gets in
    assert client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).status_code == 200


def test_security_logs_require_password(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    assert client.post(f"/api/pad/{slug}/security-logs", json={"password": "nope"}).status_code == 401


def test_open_alerts_owner(client: TestClient, dispatcher) -> None:
    slug = _slug()
    _create(client, slug, alertEmail="owner@example.com")
    client.post(f"/api/pad/{slug}/get", json={"password": "secret1"})
    client.post(f"/api/pad/{slug}/save", json={"password": "secret1", "content": "x"})
    assert len(dispatcher.of_type("note_accessed")) == 1


def test_upload_download_delete(client: TestClient, dispatcher) -> None:
    slug = _slug()
    _create(client, slug, alertEmail="owner@example.com")
    r = _upload(client, slug)
    assert r.status_code == 200, r.text
    meta = r.json()
    assert meta["name"] == "photo.png"
    assert meta["size"] == len(PNG)
    assert meta["mimeType"] == "image/png"
    assert "blobKey" not in meta

    files = client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).json()["files"]
    assert [f["id"] for f in files] == [meta["id"]]

    r = client.post(f"/api/file/{slug}/{meta['id']}", json={"password": "secret1"})
    assert r.status_code == 200
    assert r.content == PNG
    assert r.headers["content-type"] == "image/png"
    assert 'filename="photo.png"' in r.headers["content-disposition"]

    r = client.request("DELETE", f"/api/file/{meta['id']}", json={"padId": slug, "password": "secret1"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "id": meta["id"]}
    r = client.post(f"/api/file/{slug}/{meta['id']}", json={"password": "secret1"})
    assert r.status_code == 404

    kinds = [c[2] for c in dispatcher.calls]
    assert "file_uploaded" in kinds
    assert "file_downloaded" in kinds
    assert "file_deleted" in kinds


def test_upload_rejections(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    assert _upload(client, slug, password="wrong").status_code == 401
    r = _upload(client, slug, name="tool.exe", data=b"MZ\x90\x00" * 4, mime="application/octet-stream")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid file type"
    r = _upload(client, slug, name="fake.pdf", data=PNG, mime="application/pdf")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid or corrupted file"
    assert client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).json()["files"] == []


def test_upload_too_large(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    too_big = PDF + b"0" * get_settings().max_file_size_bytes
    r = _upload(client, slug, name="big.pdf", data=too_big, mime="application/pdf")
    assert r.status_code == 413


def test_file_of_other_pad_not_reachable(client: TestClient) -> None:
    owner, other = _slug(), _slug()
    _create(client, owner)
    _create(client, other, password="other-pass")
    file_id = _upload(client, owner).json()["id"]
    r = client.post(f"/api/file/{other}/{file_id}", json={"password": "other-pass"})
    assert r.status_code == 404
    r = client.request("DELETE", f"/api/file/{file_id}", json={"padId": other, "password": "other-pass"})
    assert r.status_code == 404


def test_download_expired_file_gone(client: TestClient) -> None:
    """A file past expires_at but not yet purged answers 410."""
    slug = _slug()
    _create(client, slug)
    file_id = _upload(client, slug).json()["id"]

    async def _expire() -> None:
        async with get_session() as session:
            await session.execute(
                update(FileAttachment)
                .where(FileAttachment.id == file_id)
                .values(expires_at=utcnow() - timedelta(minutes=1))
            )

    client.portal.call(_expire)
    r = client.post(f"/api/file/{slug}/{file_id}", json={"password": "secret1"})
    assert r.status_code == 410


def test_summarize(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    settings = get_settings().model_copy(update={"summarizer_api_key": "test-key"})
    answer = {"candidates": [{"content": {"parts": [{"text": "- buy groceries"}]}}]}
    app.state.summarizer = Summarizer(
        settings, transport=httpx.MockTransport(lambda request: httpx.Response(200, json=answer))
    )
    r = client.post("/api/summarize", json={"padId": slug, "password": "secret1", "content": LONG_NOTE})
    assert r.status_code == 200
    assert r.json() == {"success": True, "summary": "- buy groceries"}

    r = client.post("/api/summarize", json={"padId": slug, "password": "secret1", "content": "too short"})
    assert r.status_code == 400
    r = client.post("/api/summarize", json={"padId": slug, "password": "wrong", "content": LONG_NOTE})
    assert r.status_code == 401


def test_summarize_unavailable_leaves_pad_alone(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    client.post(f"/api/pad/{slug}/save", json={"password": "secret1", "content": LONG_NOTE})
    settings = get_settings().model_copy(update={"summarizer_api_key": "test-key"})
    app.state.summarizer = Summarizer(
        settings, transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )
    r = client.post("/api/summarize", json={"padId": slug, "password": "secret1"})
    assert r.status_code == 503
    assert r.json()["detail"] == "Summarization is currently unavailable"
    assert client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).json()["content"] == LONG_NOTE


def _is_utc(value: str) -> bool:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).utcoffset() == timedelta(0)


def test_login_success_private_and_public(client: TestClient) -> None:
    private, public = _slug(), _slug()
    _create(client, private)
    _create(client, public, password="", public=True)
    r = client.post("/api/login", json={"urlName": private, "password": "secret1"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "urlName": private, "isPublic": False}
    for password in ("", "anything"):
        r = client.post("/api/login", json={"urlName": public, "password": password})
        assert r.status_code == 200
        assert r.json() == {"success": True, "urlName": public, "isPublic": True}


def test_login_wrong_password_logged(client: TestClient) -> None:
    """A failed login is 401 and leaves a login_failed row in the owner's log."""
    slug = _slug()
    _create(client, slug)
    r = client.post("/api/login", json={"urlName": slug, "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Incorrect password"
    assert client.post("/api/login", json={"urlName": _slug(), "password": "x"}).status_code == 404
    events = client.post(f"/api/pad/{slug}/security-logs", json={"password": "secret1"}).json()
    failed = [e for e in events if e["eventType"] == "login_failed"]
    assert len(failed) == 1
    assert failed[0]["success"] is False


def test_login_failures_reach_brute_force(client: TestClient, dispatcher) -> None:
    slug = _slug()
    _create(client, slug, alertEmail="owner@example.com")
    for _ in range(5):
        assert client.post("/api/login", json={"urlName": slug, "password": "guess"}).status_code == 401
    assert len(dispatcher.of_type("brute_force")) == 1


def test_verify_route(client: TestClient) -> None:
    slug = _slug()
    _create(client, slug)
    assert client.post(f"/api/pad/{slug}/verify", json={"password": "secret1"}).json() == {"success": True}
    assert client.post(f"/api/pad/{slug}/verify", json={"password": "nope"}).status_code == 401
    assert client.post(f"/api/pad/{_slug()}/verify", json={"password": "x"}).status_code == 404


def test_timestamps_carry_utc_offset(client: TestClient) -> None:
    """Naive stored times are returned as UTC so browsers do not shift them to local time."""
    slug = _slug()
    _create(client, slug)
    saved = client.post(f"/api/pad/{slug}/save", json={"password": "secret1", "content": "x"}).json()
    assert _is_utc(saved["updatedAt"])
    meta = _upload(client, slug).json()
    assert _is_utc(meta["uploadedAt"])
    assert _is_utc(meta["expiresAt"])
    opened = client.post(f"/api/pad/{slug}/get", json={"password": "secret1"}).json()
    assert _is_utc(opened["updatedAt"])
    assert _is_utc(opened["files"][0]["expiresAt"])
    events = client.post(f"/api/pad/{slug}/security-logs", json={"password": "secret1"}).json()
    assert all(_is_utc(e["createdAt"]) for e in events)
