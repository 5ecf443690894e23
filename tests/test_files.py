import io
import json
from pathlib import Path

import pytest

from app.dataroom import create_app
from app.dataroom.db import session_scope
from app.dataroom.models import AdminUser, AuditEvent, Base, Investor
from app.dataroom.modules.files.models import File
from app.dataroom.modules.files.service import display_name, new_storage_key
from app.dataroom.modules.tracking.models import AccessLog


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("UPLOAD_DIR", "CACHE_DIR"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                Investor(email="inv@example.com", status="active"),
                AdminUser(email="admin@example.com"),
            ]
        )

    return app.test_client()


def _login(client, email: str) -> None:
    with client.session_transaction() as sess:
        sess["email"] = email


def _upload(client, name: str, data: bytes, mime_type: str, category: str | None = "Financials"):
    form = {"file": (io.BytesIO(data), name, mime_type)}
    if category is not None:
        form["category"] = category
    return client.post("/files", data=form, content_type="multipart/form-data")


def test_admin_upload_stores_bytes_and_audits(client, tmp_path):
    app = client.application
    _login(client, "admin@example.com")

    r = _upload(client, "Q1 Financials.pdf", b"%PDF-1.4 fake", "application/pdf")
    assert r.status_code == 201
    body = r.json
    assert body["name"] == "Q1 Financials.pdf"
    assert body["mimeType"] == "application/pdf"
    assert body["size"] == len(b"%PDF-1.4 fake")
    assert body["category"] == "Financials"

    with session_scope(app) as s:
        f = s.get(File, body["id"])
        assert f.storage_path.endswith(".pdf")
        assert f.storage_path != f.name
        ev = s.query(AuditEvent).filter(AuditEvent.action == "file.upload").one()
        assert ev.actor_email == "admin@example.com"
        assert ev.entity_id == str(f.id)
        assert json.loads(ev.metadata_json)["category"] == "Financials"

    stored = Path(app.config["UPLOAD_DIR"]) / f.storage_path
    assert stored.read_bytes() == b"%PDF-1.4 fake"
    assert str(stored).startswith(str(tmp_path))


@pytest.mark.parametrize(
    "name,mime_type",
    [
        ("deck.pdf", "application/pdf"),
        ("model.xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
        ("old.xls", "application/vnd.ms-excel"),
        ("demo.mp4", "video/mp4"),
        ("demo.webm", "video/webm"),
        ("demo.mov", "video/quicktime"),
    ],
)
def test_upload_allow_list_accepts(client, name, mime_type):
    _login(client, "admin@example.com")
    assert _upload(client, name, b"x", mime_type).status_code == 201


@pytest.mark.parametrize(
    "name,mime_type",
    [
        ("notes.txt", "text/plain"),
        ("slides.pptx", "application/vnd.openxmlformats-officedocument.presentationml.presentation"),
        ("photo.png", "image/png"),
    ],
)
def test_upload_allow_list_rejects(client, name, mime_type):
    _login(client, "admin@example.com")
    r = _upload(client, name, b"x", mime_type)
    assert r.status_code == 400
    assert "not allowed" in r.json["error"]


def test_upload_requires_file_and_category(client):
    _login(client, "admin@example.com")
    assert _upload(client, "deck.pdf", b"x", "application/pdf", category=None).status_code == 400
    assert _upload(client, "deck.pdf", b"x", "application/pdf", category="  ").status_code == 400
    r = client.post("/files", data={"category": "Legal"}, content_type="multipart/form-data")
    assert r.status_code == 400


def test_investor_cannot_upload_or_delete(client):
    _login(client, "admin@example.com")
    file_id = _upload(client, "deck.pdf", b"x", "application/pdf").json["id"]

    _login(client, "inv@example.com")
    assert _upload(client, "deck.pdf", b"x", "application/pdf").status_code == 403
    assert client.delete(f"/files/{file_id}").status_code == 403


def test_listing_orders_by_category(client):
    _login(client, "admin@example.com")
    _upload(client, "nda.pdf", b"x", "application/pdf", category="Legal")
    _upload(client, "misc.pdf", b"x", "application/pdf", category="Other")
    _upload(client, "pnl.xlsx", b"x", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    _login(client, "inv@example.com")
    r = client.get("/files")
    assert r.status_code == 200
    assert [f["category"] for f in r.json] == ["Financials", "Legal", "Other"]

    first = r.json[0]
    r = client.get(f"/files/{first['id']}")
    assert r.json["name"] == "pnl.xlsx"
    assert client.get("/files/9999").status_code == 404


def test_delete_removes_bytes_logs_and_every_cached_rendition(client):
    app = client.application
    _login(client, "admin@example.com")
    keep_id = _upload(client, "keep.mp4", b"keep", "video/mp4").json["id"]
    gone_id = _upload(client, "gone.mp4", b"gone", "video/mp4").json["id"]

    with session_scope(app) as s:
        investor_id = s.query(Investor).one().id
        s.add(AccessLog(investor_id=investor_id, file_id=gone_id, action="view"))
        s.add(AccessLog(investor_id=investor_id, file_id=keep_id, action="view"))
        stored = Path(app.config["UPLOAD_DIR"]) / s.get(File, gone_id).storage_path

    cache = Path(app.config["CACHE_DIR"])
    cache.mkdir(parents=True, exist_ok=True)
    for name in (f"{gone_id}_inv-{investor_id}.mp4", f"{gone_id}_adm-1.mp4", f"{keep_id}_inv-{investor_id}.mp4"):
        (cache / name).write_bytes(b"rendition")

    r = client.delete(f"/files/{gone_id}")
    assert r.status_code == 200
    assert r.json == {"success": True}

    assert not stored.exists()
    assert sorted(p.name for p in cache.iterdir()) == [f"{keep_id}_inv-{investor_id}.mp4"]

    with session_scope(app) as s:
        assert s.get(File, gone_id) is None
        assert [l.file_id for l in s.query(AccessLog).all()] == [keep_id]
        ev = s.query(AuditEvent).filter(AuditEvent.action == "file.delete").one()
        assert json.loads(ev.metadata_json)["renditions_removed"] == 2

    assert client.delete(f"/files/{gone_id}").status_code == 404


def test_storage_names_never_reuse_client_paths():
    assert display_name("C:\\Users\\me\\deck.pdf") == "deck.pdf"
    assert display_name("../../etc/passwd") == "passwd"
    assert display_name("") == "document.bin"

    key = new_storage_key("../../Deck Final.PDF")
    assert key.endswith(".pdf")
    assert "/" not in key and ".." not in key
    assert new_storage_key("deck.pdf") != new_storage_key("deck.pdf")
