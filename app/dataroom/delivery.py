"""
Secure document delivery.

Given a stored file and the viewer asking for it, decide whether the viewer may
receive a clean copy, otherwise watermark it with the renderer for its MIME family.

Fallback policy: if a renderer fails for any reason (malformed source, encoder
crash, encode timeout) the ORIGINAL bytes are served and the failure is logged
with the "WATERMARK FALLBACK" prefix. Protection degrades, availability persists.
This is a partial-protection failure that someone should look at, not a request
error. Missing stored bytes are different: there is nothing to fall back to, so
StorageError propagates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session

from app.dataroom.modules.files.models import File
from app.dataroom.modules.tracking.models import AccessLog
from app.dataroom.modules.tracking.service import log_access
from app.dataroom.rbac import Viewer
from app.dataroom.storage import Storage, StorageError
from app.dataroom.watermark import Renderer, RenderError, Source, renderer_for

logger = logging.getLogger(__name__)


@dataclass
class RenderedOutput:
    content_type: str
    filename: str
    data: bytes | None = None
    path: Path | None = None  # streamed from disk when set
    watermarked: bool = False
    fell_back: bool = False

    def __post_init__(self) -> None:
        if (self.data is None) == (self.path is None):
            raise ValueError("RenderedOutput needs exactly one of data or path")

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return self.path.stat().st_size

    def read_bytes(self) -> bytes:
        if self.data is not None:
            return self.data
        return self.path.read_bytes()


def should_skip_watermark(viewer: Viewer, wants_clean: bool) -> bool:
    """
    The only way protected content leaves unmarked: an admin who is not also an
    investor, explicitly asking for a clean copy. Everything else is watermarked.
    """
    return bool(wants_clean) and viewer.is_admin and not viewer.is_investor


def _original(source: Source) -> RenderedOutput:
    doc = source.document
    local = source.storage.local_path(source.key)
    if local is not None:
        return RenderedOutput(content_type=doc.mime_type, filename=doc.name, path=local)
    return RenderedOutput(content_type=doc.mime_type, filename=doc.name, data=source.read_bytes())


def deliver(
    document: File,
    viewer: Viewer,
    *,
    wants_clean: bool = False,
    storage: Storage,
    renderers: dict[str, Renderer],
) -> RenderedOutput:
    source = Source(document=document, storage=storage)
    if not storage.exists(document.storage_path):
        raise StorageError(f"Stored bytes missing for file {document.id} ({document.storage_path})")

    if should_skip_watermark(viewer, wants_clean):
        logger.info("Serving clean copy of file %s to admin %s", document.id, viewer.email)
        return _original(source)

    renderer = renderer_for(document.mime_type, renderers)
    if renderer is None:
        # Only PDF, spreadsheets and video are accepted on upload; nothing to stamp otherwise.
        return _original(source)

    try:
        rendition = renderer.render(source, viewer)
        if rendition.data is not None and not rendition.data:
            raise RenderError("Renderer returned empty output")
        if rendition.path is not None and rendition.path.stat().st_size == 0:
            raise RenderError(f"Renderer produced an empty file: {rendition.path.name}")
    except Exception:
        logger.exception(
            "WATERMARK FALLBACK: %s watermark failed for file %s (%s) viewer=%s; serving ORIGINAL without watermark",
            renderer.family,
            document.id,
            document.mime_type,
            viewer.email,
        )
        out = _original(source)
        out.fell_back = True
        return out

    return RenderedOutput(
        content_type=document.mime_type,
        filename=document.name,
        data=rendition.data,
        path=rendition.path,
        watermarked=True,
    )


def record_delivery(
    s: Session,
    *,
    document: File,
    viewer: Viewer,
    action: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AccessLog | None:
    """
    Write the access-ledger entry for an investor viewer. Best effort: a failure
    is logged and swallowed so the document is still delivered.
    """
    if viewer.investor is None:
        return None
    try:
        log = log_access(
            s,
            investor_id=viewer.investor.id,
            file_id=document.id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        s.commit()
        return log
    except Exception:
        logger.exception(
            "Access log write failed (file=%s investor=%s action=%s); delivering anyway",
            document.id,
            viewer.investor.id,
            action,
        )
        s.rollback()
        return None
