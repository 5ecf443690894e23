from __future__ import annotations

import uuid
from pathlib import PurePosixPath

from flask import Request
from werkzeug.utils import secure_filename

# Upload allow-list. Legacy .xls is accepted but cannot be watermarked (falls back to the original).
ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
        "video/mp4",
        "video/webm",
        "video/quicktime",
    }
)


def normalize_mime_type(raw: str | None) -> str:
    return (raw or "").split(";", 1)[0].strip().lower()


def is_allowed_mime_type(mime_type: str | None) -> bool:
    return normalize_mime_type(mime_type) in ALLOWED_MIME_TYPES


def display_name(filename: str | None) -> str:
    """Name shown to investors and used as the download name."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "document.bin"


def new_storage_key(filename: str | None) -> str:
    """Opaque, collision-free storage key that keeps the original extension."""
    ext = PurePosixPath(secure_filename(filename or "")).suffix.lower()
    return f"{uuid.uuid4()}{ext}"


def parse_bool_arg(raw: str | None) -> bool:
    return (raw or "").strip().lower() == "true"


def client_ip(req: Request) -> str | None:
    forwarded = (req.headers.get("X-Forwarded-For") or "").split(",", 1)[0].strip()
    return forwarded or req.headers.get("X-Real-IP") or req.remote_addr
