"""
Session-backed caller identity.

Sign-in (one-time codes) happens elsewhere; by the time a request reaches this app
the signed session cookie carries the caller's email under "email".
"""
from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, request, session

from app.dataroom.db import db_session
from app.dataroom.rbac import resolve_viewer

bp = Blueprint("auth", __name__)


def load_current_viewer() -> None:
    """
    Loads g.viewer from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.viewer = None
        return

    email = session.get("email")
    if not email:
        g.viewer = None
        return

    try:
        g.viewer = resolve_viewer(db_session(), email)
    except Exception as e:
        current_app.logger.error("load_current_viewer DB error (clearing session): %s", e)
        session.pop("email", None)
        g.viewer = None


@bp.post("/logout")
def logout():
    session.pop("email", None)
    return {"success": True}
