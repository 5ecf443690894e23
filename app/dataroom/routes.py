import shutil

from flask import Blueprint, current_app

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Liveness, plus which storage backend is in use and whether videos can be watermarked."""
    cfg = current_app.config
    return {
        "ok": True,
        "storage": cfg.get("STORAGE_BACKEND") or "local",
        "videoEncoder": shutil.which(cfg.get("FFMPEG_PATH") or "ffmpeg") is not None,
    }


@bp.get("/healthz")
def healthz():
    # Probe endpoint: no DB, no filesystem.
    return "ok", 200
