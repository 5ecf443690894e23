"""
Access tracking: view-duration heartbeats, plus admin reporting and CSV export.
"""

from __future__ import annotations

import math
from datetime import datetime

from flask import Blueprint, Response, current_app, g, jsonify, request

from app.dataroom.audit import record_event
from app.dataroom.db import db_session
from app.dataroom.modules.tracking.models import MAX_DURATION_SECONDS, AccessLog
from app.dataroom.modules.tracking.service import (
    daily_activity,
    export_access_logs_csv,
    file_analytics,
    investor_analytics,
    paginated_activity,
    recent_activity,
    summary_counts,
    update_duration,
)
from app.dataroom.rbac import require_admin, require_viewer

bp = Blueprint("tracking", __name__)


def _parse_access_log_id(raw: object) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _parse_duration(raw: object) -> float | None:
    # JSON booleans are ints in Python; a heartbeat never sends one.
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if isinstance(raw, float) and not math.isfinite(raw):
        return None
    if raw < 0 or raw > MAX_DURATION_SECONDS:
        return None
    return float(raw)


@bp.post("/tracking")
@require_viewer
def heartbeat():
    # navigator.sendBeacon may post JSON with a text/plain content type.
    body = request.get_json(silent=True, force=True)
    if not isinstance(body, dict):
        body = {}
    access_log_id = _parse_access_log_id(body.get("accessLogId", body.get("accessEventId")))
    duration = _parse_duration(body.get("duration", body.get("durationSeconds")))
    if access_log_id is None or duration is None:
        return jsonify(error="accessLogId and duration are required"), 400

    s = db_session()
    viewer = g.viewer
    log = s.get(AccessLog, access_log_id)
    # Heartbeats only ever come from the investor who opened the document.
    if log is None or viewer.investor is None or log.investor_id != viewer.investor.id:
        return jsonify(error="Access log not found"), 404

    try:
        update_duration(s, access_log_id, duration)
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Tracking update failed (access_log_id=%s)", access_log_id)
        return jsonify(error="Failed to update tracking"), 500
    return jsonify(success=True)


@bp.get("/tracking/export")
@require_admin
def export_csv():
    s = db_session()
    csv_text = export_access_logs_csv(s)
    record_event(s, actor_email=g.viewer.email, action="tracking.export", entity_type="AccessLog")
    s.commit()
    filename = f"dataroom-access-logs-{datetime.utcnow().date().isoformat()}.csv"
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@bp.get("/analytics")
@require_admin
def analytics():
    s = db_session()
    return jsonify(
        summary=summary_counts(s),
        investors=investor_analytics(s),
        files=file_analytics(s),
        dailyActivity=daily_activity(s, 30),
        recentActivity=recent_activity(s, 100),
    )


@bp.get("/activity")
@require_admin
def activity():
    s = db_session()
    page = request.args.get("page", default=1, type=int) or 1
    limit = request.args.get("limit", default=20, type=int) or 20
    action = request.args.get("action")
    return jsonify(paginated_activity(s, page=page, limit=limit, action=action))
