"""
Investor management and NDA consent.

Admins maintain the investor list. Apart from the automatic NDA and first-access
transitions (statuses.advance), status changes made here are limited to
MANUAL_STATUSES. NDA text is versioned by row: saving new text deactivates the
previous template instead of editing it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, selectinload

from app.dataroom.models import Investor
from app.dataroom.modules.investors.models import NdaTemplate
from app.dataroom.modules.tracking.models import IP_ADDRESS_MAX_LENGTH, USER_AGENT_MAX_LENGTH
from app.dataroom.modules.tracking.service import access_stats
from app.dataroom.statuses import EVENT_NDA_ACCEPT, MANUAL_STATUSES, advance, has_dataroom_access, status_label

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EMAIL_MAX_LENGTH = 320
TEXT_MAX_LENGTH = 255


class InvestorExistsError(Exception):
    pass


class InvalidInvestorError(ValueError):
    pass


class NdaRevokedError(Exception):
    pass


def normalize_email(raw: object) -> str | None:
    if not isinstance(raw, str):
        return None
    email = raw.strip().lower()
    if len(email) > EMAIL_MAX_LENGTH or not _EMAIL_RE.match(email):
        return None
    return email


def _optional_text(raw: object, field: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise InvalidInvestorError(f"{field} must be a string")
    text = raw.strip()
    if len(text) > TEXT_MAX_LENGTH:
        raise InvalidInvestorError(f"{field} is too long")
    return text or None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def investor_to_dict(investor: Investor) -> dict[str, Any]:
    return {
        "id": investor.id,
        "email": investor.email,
        "name": investor.name,
        "firm": investor.firm,
        "status": investor.status,
        "statusLabel": status_label(investor.status),
        "ndaRequired": investor.nda_required,
        "ndaAcceptedAt": _iso(investor.nda_accepted_at),
        "createdAt": _iso(investor.created_at),
    }


def list_investors(s: Session) -> list[dict[str, Any]]:
    """Investor list for admins, newest first, with access counters."""
    investors = (
        s.query(Investor)
        .options(selectinload(Investor.access_logs))
        .order_by(Investor.created_at.desc(), Investor.id.desc())
        .all()
    )
    out: list[dict[str, Any]] = []
    for investor in investors:
        stats = access_stats(investor.access_logs)
        row = investor_to_dict(investor)
        row.update(
            totalViews=stats["views"],
            totalDownloads=stats["downloads"],
            uniqueFilesViewed=stats["files_viewed"],
            totalTimeSpent=stats["time_spent"],
            lastActiveAt=_iso(stats["last_active"]),
        )
        out.append(row)
    return out


def add_investor(
    s: Session,
    *,
    email: object,
    name: object = None,
    firm: object = None,
    skip_nda: bool = False,
) -> Investor:
    """
    Invite an investor. With skip_nda the investor starts in "nda_accepted" and
    can open documents without the click-through; no consent record is written.
    """
    normalized = normalize_email(email)
    if normalized is None:
        raise InvalidInvestorError("A valid email is required")
    investor = Investor(
        email=normalized,
        name=_optional_text(name, "name"),
        firm=_optional_text(firm, "firm"),
    )
    if s.query(Investor.id).filter(Investor.email == normalized).first() is not None:
        raise InvestorExistsError(f"Investor {normalized} already exists")
    if skip_nda:
        investor.nda_required = False
        investor.status = "nda_accepted"
    else:
        investor.status = "invited"
    s.add(investor)
    s.flush()
    return investor


def update_investor(s: Session, investor: Investor, changes: dict[str, Any]) -> dict[str, Any]:
    """
    Apply admin edits. Only keys present in `changes` are touched. Returns the
    {field: {"old", "new"}} changes for the audit trail.
    """
    if "status" in changes and changes["status"] not in MANUAL_STATUSES:
        raise InvalidInvestorError(f"Status must be one of: {', '.join(MANUAL_STATUSES)}")

    diff: dict[str, Any] = {}
    for field in ("name", "firm"):
        if field in changes:
            value = _optional_text(changes[field], field)
            if value != getattr(investor, field):
                diff[field] = {"old": getattr(investor, field), "new": value}
                setattr(investor, field, value)

    if "status" in changes:
        status = changes["status"]
        if status != investor.status:
            diff["status"] = {"old": investor.status, "new": status}
            investor.status = status

    s.flush()
    return diff


# ---------------------------------------------------------------------------
# NDA
# ---------------------------------------------------------------------------


def active_template(s: Session) -> NdaTemplate | None:
    return (
        s.query(NdaTemplate)
        .filter(NdaTemplate.is_active.is_(True))
        .order_by(NdaTemplate.created_at.desc(), NdaTemplate.id.desc())
        .first()
    )


def save_template(s: Session, content: str) -> NdaTemplate:
    """Replace the active NDA text. Earlier versions stay for investors who accepted them."""
    for old in s.query(NdaTemplate).filter(NdaTemplate.is_active.is_(True)).all():
        old.is_active = False
    template = NdaTemplate(content=content, is_active=True)
    s.add(template)
    s.flush()
    return template


def accept_nda(
    s: Session,
    investor: Investor,
    *,
    ip_address: str | None,
    user_agent: str | None,
    now: datetime | None = None,
) -> bool:
    """
    Record NDA consent. Returns False when the investor had already accepted
    (nothing changes). Dropped investors cannot accept.
    """
    if investor.nda_accepted_at is not None:
        return False
    if not has_dataroom_access(investor.status) and investor.status != "invited":
        raise NdaRevokedError(f"Investor {investor.id} is {investor.status}")

    template = active_template(s)
    investor.status = advance(investor.status, EVENT_NDA_ACCEPT)
    investor.nda_accepted_at = now or datetime.utcnow()
    investor.nda_ip_address = (ip_address or "unknown")[:IP_ADDRESS_MAX_LENGTH]
    investor.nda_user_agent = (user_agent or "unknown")[:USER_AGENT_MAX_LENGTH]
    investor.nda_template_id = template.id if template else None
    s.flush()
    logger.info("Investor %s accepted the NDA (template=%s)", investor.id, investor.nda_template_id)
    return True


def signed_template(s: Session, investor: Investor) -> NdaTemplate | None:
    """The text the investor accepted, falling back to the current one."""
    if investor.nda_template_id is not None:
        template = s.get(NdaTemplate, investor.nda_template_id)
        if template is not None:
            return template
    return active_template(s)
