#!/usr/bin/env python3
"""
Production startup script (container run command).

1. Runs migrations + admin seed (release.py)
2. Prepares upload/cache directories and checks for ffmpeg
3. Starts gunicorn (replaces this process via os.execvp)

Usage:
    python scripts/start.py

Gunicorn runs threaded workers: concurrent requests for the same video
rendition inside one worker share a single encode.
"""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _port() -> str:
    port = os.environ.get("PORT", "").strip()
    if not port:
        print("WARNING: PORT not set, using default 8080", flush=True)
        return "8080"
    try:
        port_int = int(port)
        if port_int < 1 or port_int > 65535:
            raise ValueError("Port out of range")
    except ValueError:
        print(f"ERROR: Invalid PORT value '{port}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def _prepare_filesystem() -> None:
    from app.dataroom.config import load_settings

    settings = load_settings()
    for d in (settings.upload_dir, settings.cache_dir):
        Path(d).mkdir(parents=True, exist_ok=True)
    if not shutil.which(settings.ffmpeg_path):
        # Videos will still be served, unwatermarked, with a WATERMARK FALLBACK log per request.
        print(f"WARNING: ffmpeg not found at '{settings.ffmpeg_path}'", flush=True)


def main() -> None:
    port = _port()

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release
    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    _prepare_filesystem()

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ===", flush=True)
    os.execvp(
        "gunicorn",
        [
            "gunicorn",
            "app.wsgi:app",
            "--bind", f"0.0.0.0:{port}",
            "--workers", "2",
            "--threads", "4",
            # Above VIDEO_ENCODE_TIMEOUT so a timed-out encode can still fall back.
            "--timeout", "60",
            "--preload",
            "--access-logfile", "-",
            "--error-logfile", "-",
        ],
    )


if __name__ == "__main__":
    main()
