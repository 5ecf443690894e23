"""
Dataroom files: upload/list/delete for admins, watermarked view/download for viewers.
"""

from __future__ import annotations

import io

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file
from sqlalchemy.orm import Session

from app.dataroom.audit import record_event
from app.dataroom.categories import normalize_category, sort_categories
from app.dataroom.db import db_session
from app.dataroom.delivery import RenderedOutput, deliver, record_delivery
from app.dataroom.modules.files.models import File
from app.dataroom.modules.files.service import (
    client_ip,
    display_name,
    is_allowed_mime_type,
    new_storage_key,
    normalize_mime_type,
    parse_bool_arg,
)
from app.dataroom.modules.tracking.service import ACTION_DOWNLOAD, ACTION_VIEW
from app.dataroom.rbac import Viewer, require_admin, require_document_access, require_viewer
from app.dataroom.storage import StorageError, storage_from_config
from app.dataroom.watermark import invalidate_video_cache, renderers

bp = Blueprint("files", __name__)


def _viewer() -> Viewer:
    v = getattr(g, "viewer", None)
    if not v:
        raise RuntimeError("No current viewer")
    return v


def _get_file_or_404(s: Session, file_id: int) -> File:
    f = s.get(File, file_id)
    if not f:
        abort(404)
    return f


@bp.get("/files")
@require_viewer
def list_files():
    s = db_session()
    files = s.query(File).order_by(File.uploaded_at.desc(), File.id.desc()).all()
    order = sort_categories(sorted({f.category for f in files}))
    files.sort(key=lambda f: order.index(f.category))
    return jsonify([f.to_dict() for f in files])


@bp.post("/files")
@require_admin
def upload_file():
    s = db_session()
    viewer = _viewer()

    upload = request.files.get("file")
    category = normalize_category(request.form.get("category"))
    if not upload or not upload.filename or not category:
        return jsonify(error="File and category are required"), 400

    mime_type = normalize_mime_type(upload.mimetype)
    if not is_allowed_mime_type(mime_type):
        return jsonify(error="File type not allowed. Supported: PDF, Excel, Video"), 400

    name = display_name(upload.filename)
    storage_key = new_storage_key(upload.filename)
    storage = storage_from_config(current_app.config)
    size = storage.put_stream(storage_key, upload.stream, content_type=mime_type)

    f = File(name=name, storage_path=storage_key, mime_type=mime_type, size=size, category=category)
    s.add(f)
    s.flush()

    record_event(
        s,
        actor_email=viewer.email,
        action="file.upload",
        entity_type="File",
        entity_id=str(f.id),
        metadata={"name": name, "mime_type": mime_type, "size": size, "category": category},
    )
    s.commit()
    current_app.logger.info("File %s uploaded (%s, %s bytes) by %s", f.id, mime_type, size, viewer.email)
    return jsonify(f.to_dict()), 201


@bp.get("/files/<int:file_id>")
@require_viewer
def file_metadata(file_id: int):
    s = db_session()
    return jsonify(_get_file_or_404(s, file_id).to_dict())


@bp.delete("/files/<int:file_id>")
@require_admin
def delete_file(file_id: int):
    s = db_session()
    viewer = _viewer()
    f = _get_file_or_404(s, file_id)

    storage = storage_from_config(current_app.config)
    try:
        storage.delete(f.storage_path)
    except Exception as e:
        # The record still goes; orphaned bytes are harmless, orphaned records are not.
        current_app.logger.warning("Could not delete stored bytes for file %s (%s): %s", f.id, f.storage_path, e)

    # Cached renditions must never outlive their source.
    removed = invalidate_video_cache(f.id)

    record_event(
        s,
        actor_email=viewer.email,
        action="file.delete",
        entity_type="File",
        entity_id=str(f.id),
        metadata={"name": f.name, "mime_type": f.mime_type, "renditions_removed": removed},
    )
    s.delete(f)
    s.commit()
    return jsonify(success=True)


def _file_response(output: RenderedOutput, *, inline: bool):
    if output.path is not None:
        resp = send_file(
            output.path,
            mimetype=output.content_type,
            as_attachment=not inline,
            download_name=output.filename,
            max_age=0,
        )
    else:
        resp = send_file(
            io.BytesIO(output.data or b""),
            mimetype=output.content_type,
            as_attachment=not inline,
            download_name=output.filename,
            max_age=0,
        )
    resp.headers["Cache-Control"] = "private, no-store"
    return resp


def _deliver_file(file_id: int, *, action: str, inline: bool):
    s = db_session()
    viewer = _viewer()
    f = _get_file_or_404(s, file_id)
    wants_clean = parse_bool_arg(request.args.get("clean"))

    try:
        output = deliver(
            f,
            viewer,
            wants_clean=wants_clean,
            storage=storage_from_config(current_app.config),
            renderers=renderers(),
        )
    except StorageError:
        current_app.logger.exception(
            "Delivery failed: stored bytes unavailable for file %s (request_id=%s)",
            f.id,
            getattr(g, "request_id", None),
        )
        return jsonify(error="Failed to process file"), 500

    log = record_delivery(
        s,
        document=f,
        viewer=viewer,
        action=action,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )

    resp = _file_response(output, inline=inline)
    if log is not None and action == ACTION_VIEW:
        resp.headers["X-Access-Log-Id"] = str(log.id)
    return resp


@bp.get("/files/<int:file_id>/download")
@require_document_access
def download_file(file_id: int):
    return _deliver_file(file_id, action=ACTION_DOWNLOAD, inline=False)


@bp.get("/files/<int:file_id>/view")
@require_document_access
def view_file(file_id: int):
    return _deliver_file(file_id, action=ACTION_VIEW, inline=True)
