import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.dataroom import create_app
from app.dataroom.db import session_scope
from app.dataroom.models import Base, Investor
from app.dataroom.modules.files.models import File
from app.dataroom.modules.tracking.models import AccessLog
from app.dataroom.storage import storage_from_config
from app.dataroom.watermark import EncodeTimeoutError, RenderError, VideoWatermarker, build_renderers
from app.dataroom.watermark.video import escape_drawtext

# argv: source, output, label, delay. Appends the label so each rendition is distinguishable.
COPY = (
    "import sys, time; time.sleep(float(sys.argv[4])); "
    "data = open(sys.argv[1], 'rb').read(); "
    "open(sys.argv[2], 'wb').write(data + sys.argv[3].encode())"
)
HANG = "import sys, time; open(sys.argv[2], 'wb').write(b'partial'); time.sleep(60)"
FAIL = "import sys; sys.stderr.write('bad input'); sys.exit(3)"


class ScriptWatermarker(VideoWatermarker):
    """Runs a small Python script in place of ffmpeg."""

    def __init__(self, cache_dir, *, script=COPY, delay=0.0, **kwargs):
        super().__init__(cache_dir, **kwargs)
        self.script = script
        self.delay = delay
        self.commands = []

    def build_command(self, source_path, label, output_path):
        cmd = [sys.executable, "-c", self.script, str(source_path), str(output_path), label, str(self.delay)]
        self.commands.append(cmd)
        return cmd


@pytest.fixture()
def source(tmp_path):
    p = tmp_path / "originals" / "deck.mp4"
    p.parent.mkdir()
    p.write_bytes(b"fake-video-bytes")
    return p


def test_miss_encodes_once_then_serves_from_cache(tmp_path, source):
    w = ScriptWatermarker(tmp_path / "cache")

    first = w.watermark(source, "inv@example.com", 7, "inv-1")
    assert first.name == "7_inv-1.mp4"
    assert first.read_bytes() == b"fake-video-bytes" + b"inv@example.com"
    assert len(w.commands) == 1

    second = w.watermark(source, "inv@example.com", 7, "inv-1")
    assert second == first
    assert len(w.commands) == 1
    assert w.lookup(7, "inv-1", ".mp4") == first


def test_each_viewer_gets_their_own_rendition(tmp_path, source):
    w = ScriptWatermarker(tmp_path / "cache")

    a = w.watermark(source, "a@example.com", 7, "inv-1")
    b = w.watermark(source, "b@example.com", 7, "inv-2")
    admin = w.watermark(source, "admin@example.com", 7, "adm-1")

    assert len({a, b, admin}) == 3
    assert a.read_bytes().endswith(b"a@example.com")
    assert b.read_bytes().endswith(b"b@example.com")
    assert len(w.commands) == 3


def test_invalidate_removes_every_viewer_of_one_document_only(tmp_path, source):
    w = ScriptWatermarker(tmp_path / "cache")
    w.watermark(source, "a@example.com", 7, "inv-1")
    w.watermark(source, "b@example.com", 7, "inv-2")
    w.watermark(source, "a@example.com", 70, "inv-1")

    assert w.invalidate(7) == 2
    assert w.lookup(7, "inv-1", ".mp4") is None
    assert w.lookup(7, "inv-2", ".mp4") is None
    assert w.lookup(70, "inv-1", ".mp4") is not None

    # Next request re-encodes.
    w.watermark(source, "a@example.com", 7, "inv-1")
    assert len(w.commands) == 4


def test_invalidate_without_cache_dir_is_a_noop(tmp_path):
    assert VideoWatermarker(tmp_path / "missing").invalidate(1) == 0


def test_timeout_kills_encoder_and_leaves_no_file(tmp_path, source):
    cache = tmp_path / "cache"
    w = ScriptWatermarker(cache, script=HANG, timeout=0.5, kill_grace=1.0)

    started = time.monotonic()
    with pytest.raises(EncodeTimeoutError):
        w.watermark(source, "inv@example.com", 7, "inv-1")

    assert time.monotonic() - started < 10
    assert list(cache.iterdir()) == []
    assert w.lookup(7, "inv-1", ".mp4") is None


def test_encoder_failure_raises_render_error_and_caches_nothing(tmp_path, source):
    cache = tmp_path / "cache"
    w = ScriptWatermarker(cache, script=FAIL)

    with pytest.raises(RenderError, match="bad input"):
        w.watermark(source, "inv@example.com", 7, "inv-1")
    assert list(cache.iterdir()) == []


def test_missing_encoder_binary_raises_render_error(tmp_path, source):
    w = VideoWatermarker(tmp_path / "cache", ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))
    with pytest.raises(RenderError, match="Cannot start video encoder"):
        w.watermark(source, "inv@example.com", 7, "inv-1")


def test_concurrent_requests_for_same_viewer_share_one_encode(tmp_path, source):
    w = ScriptWatermarker(tmp_path / "cache", delay=0.5)

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda _: w.watermark(source, "inv@example.com", 7, "inv-1"), range(6)))

    assert len(set(results)) == 1
    assert len(w.commands) == 1
    assert results[0].read_bytes() == b"fake-video-bytes" + b"inv@example.com"


def test_delete_during_encode_does_not_repopulate_cache(tmp_path, source):
    cache = tmp_path / "cache"
    w = ScriptWatermarker(cache, delay=1.0)

    with ThreadPoolExecutor(max_workers=1) as pool:
        pending = pool.submit(w.watermark, source, "inv@example.com", 7, "inv-1")
        time.sleep(0.3)
        w.invalidate(7)
        with pytest.raises(RenderError, match="invalidated"):
            pending.result()

    assert [p.name for p in cache.iterdir() if p.name.startswith("7_")] == []
    assert w.lookup(7, "inv-1", ".mp4") is None

    # A request after the delete encodes afresh.
    w.delay = 0.0
    assert w.watermark(source, "inv@example.com", 7, "inv-1").is_file()
    assert len(w.commands) == 2


def test_drawtext_escaping_and_command_shape(tmp_path):
    assert escape_drawtext("a:b'c%d\\e") == "a\\:b\\'c\\%d\\\\e"

    w = VideoWatermarker(tmp_path, ffmpeg_path="/opt/ffmpeg")
    cmd = w.build_command(tmp_path / "in.mp4", "o'brien@example.com", tmp_path / "out.mp4")
    assert cmd[0] == "/opt/ffmpeg"
    vf = cmd[cmd.index("-vf") + 1]
    assert "o\\'brien@example.com" in vf
    assert "CONFIDENTIAL" in vf
    assert cmd[-1] == str(tmp_path / "out.mp4")


# ---------------------------------------------------------------------------
# Through the HTTP surface
# ---------------------------------------------------------------------------


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

    storage = storage_from_config(app.config)
    storage.put_bytes("clip.mp4", b"fake-video-bytes")
    with session_scope(app) as s:
        s.add(Investor(email="inv@example.com", status="active"))
        s.add(File(name="Demo.mp4", storage_path="clip.mp4", mime_type="video/mp4", size=16, category="Product"))

    c = app.test_client()
    with c.session_transaction() as sess:
        sess["email"] = "inv@example.com"
    return c


def _file_id(app) -> int:
    with session_scope(app) as s:
        return s.query(File).one().id


def _install(app, watermarker):
    app.extensions["video_watermarker"] = watermarker
    app.extensions["renderers"] = build_renderers(watermarker)


def test_video_view_is_watermarked_and_cached_per_viewer(client):
    app = client.application
    w = ScriptWatermarker(app.config["CACHE_DIR"])
    _install(app, w)
    file_id = _file_id(app)

    r = client.get(f"/files/{file_id}/view")
    assert r.status_code == 200
    assert r.mimetype == "video/mp4"
    assert r.data == b"fake-video-bytes" + b"inv@example.com"
    r.close()

    r = client.get(f"/files/{file_id}/view")
    assert r.data == b"fake-video-bytes" + b"inv@example.com"
    r.close()
    assert len(w.commands) == 1

    with session_scope(app) as s:
        assert s.query(AccessLog).filter(AccessLog.file_id == file_id).count() == 2


def test_video_encode_timeout_falls_back_to_original(client, caplog):
    app = client.application
    _install(app, ScriptWatermarker(app.config["CACHE_DIR"], script=HANG, timeout=0.5, kill_grace=1.0))
    file_id = _file_id(app)

    with caplog.at_level(logging.ERROR):
        r = client.get(f"/files/{file_id}/view")
    assert r.status_code == 200
    assert r.data == b"fake-video-bytes"
    r.close()
    assert any("WATERMARK FALLBACK" in rec.getMessage() for rec in caplog.records)

    # The ledger still records the access.
    with session_scope(app) as s:
        assert s.query(AccessLog).count() == 1
