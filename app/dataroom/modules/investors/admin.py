"""
Investors: admin CRUD over the investor list, and the investor-facing NDA click-through.
"""

from __future__ import annotations

import io

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file
from sqlalchemy.orm import Session

from app.dataroom.audit import record_event
from app.dataroom.db import db_session
from app.dataroom.models import Investor
from app.dataroom.modules.files.service import client_ip
from app.dataroom.modules.investors.nda_pdf import render_signed_nda
from app.dataroom.modules.investors.service import (
    InvalidInvestorError,
    InvestorExistsError,
    NdaRevokedError,
    accept_nda,
    active_template,
    add_investor,
    investor_to_dict,
    list_investors,
    save_template,
    signed_template,
    update_investor,
)
from app.dataroom.rbac import require_admin, require_viewer

bp = Blueprint("investors", __name__)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _get_investor_or_404(s: Session, investor_id: int) -> Investor:
    investor = s.get(Investor, investor_id)
    if not investor:
        abort(404)
    return investor


@bp.get("/investors")
@require_admin
def investors_list():
    return jsonify(list_investors(db_session()))


@bp.post("/investors")
@require_admin
def investors_add():
    s = db_session()
    body = _json_body()
    try:
        investor = add_investor(
            s,
            email=body.get("email"),
            name=body.get("name"),
            firm=body.get("firm"),
            skip_nda=body.get("skipNda") is True,
        )
    except InvalidInvestorError as e:
        return jsonify(error=str(e)), 400
    except InvestorExistsError:
        return jsonify(error="Investor with this email already exists"), 409

    record_event(
        s,
        actor_email=g.viewer.email,
        action="investor.add",
        entity_type="Investor",
        entity_id=str(investor.id),
        metadata={"email": investor.email, "skip_nda": not investor.nda_required},
    )
    s.commit()
    current_app.logger.info("Investor %s (%s) added by %s", investor.id, investor.email, g.viewer.email)
    return jsonify(investor_to_dict(investor)), 201


@bp.put("/investors/<int:investor_id>")
@require_admin
def investors_update(investor_id: int):
    s = db_session()
    investor = _get_investor_or_404(s, investor_id)
    try:
        diff = update_investor(s, investor, _json_body())
    except InvalidInvestorError as e:
        s.rollback()
        return jsonify(error=str(e)), 400

    if diff:
        record_event(
            s,
            actor_email=g.viewer.email,
            action="investor.update",
            entity_type="Investor",
            entity_id=str(investor.id),
            metadata=diff,
        )
    s.commit()
    return jsonify(investor_to_dict(investor))


@bp.delete("/investors/<int:investor_id>")
@require_admin
def investors_delete(investor_id: int):
    s = db_session()
    investor = _get_investor_or_404(s, investor_id)
    record_event(
        s,
        actor_email=g.viewer.email,
        action="investor.delete",
        entity_type="Investor",
        entity_id=str(investor.id),
        metadata={"email": investor.email},
    )
    s.delete(investor)
    s.commit()
    return jsonify(success=True)


@bp.get("/nda")
@require_viewer
def nda_get():
    template = active_template(db_session())
    if template is None:
        return jsonify(error="No NDA template configured"), 404
    investor = g.viewer.investor
    accepted_at = investor.nda_accepted_at if investor else None
    return jsonify(
        content=template.content,
        alreadyAccepted=accepted_at is not None,
        acceptedAt=accepted_at.isoformat() if accepted_at else None,
    )


@bp.post("/nda")
@require_viewer
def nda_accept():
    s = db_session()
    investor = g.viewer.investor
    if investor is None:
        return jsonify(error="Investor not found"), 404
    if investor.nda_accepted_at is not None:
        return jsonify(message="NDA already accepted")
    if _json_body().get("accepted") is not True:
        return jsonify(error="You must accept the NDA to continue"), 400

    try:
        accept_nda(
            s,
            investor,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except NdaRevokedError:
        g.forbidden_reason = "Access has been revoked"
        abort(403)
    s.commit()
    return jsonify(message="NDA accepted successfully", investor=investor_to_dict(investor))


@bp.put("/nda/settings")
@require_admin
def nda_settings():
    s = db_session()
    content = _json_body().get("content")
    if not isinstance(content, str) or not content.strip():
        return jsonify(error="Content is required"), 400
    template = save_template(s, content)
    record_event(
        s,
        actor_email=g.viewer.email,
        action="nda.update",
        entity_type="NdaTemplate",
        entity_id=str(template.id),
        metadata={"length": len(content)},
    )
    s.commit()
    return jsonify(template.to_dict())


@bp.get("/nda/download")
@require_viewer
def nda_download():
    s = db_session()
    investor = g.viewer.investor
    if investor is None or investor.nda_accepted_at is None:
        g.forbidden_reason = "NDA not yet accepted"
        abort(403)
    template = signed_template(s, investor)
    if template is None:
        return jsonify(error="No NDA template found"), 404

    pdf = render_signed_nda(template.content, investor)
    resp = send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name="NDA-Signed.pdf",
        max_age=0,
    )
    resp.headers["Cache-Control"] = "private, no-store"
    return resp
