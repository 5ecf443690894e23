"""
Access ledger.

Every investor view/download of a file is one AccessLog row. Rows are created with
duration=0 and afterwards only their duration changes, overwritten by client
heartbeats (periodic, on visibility change and on unload). Last write wins: a late
or dropped final heartbeat can under-report a session, and no server-side clamping
against wall-clock time is applied.

Recording the first access of an investor in "nda_accepted" promotes them to
"active" (see statuses.advance). Reporting helpers below are pure folds over the log.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.dataroom.models import Investor
from app.dataroom.modules.files.models import File
from app.dataroom.modules.tracking.models import (
    IP_ADDRESS_MAX_LENGTH,
    MAX_DURATION_SECONDS,
    USER_AGENT_MAX_LENGTH,
    AccessLog,
)
from app.dataroom.statuses import EVENT_ACCESS, advance

logger = logging.getLogger(__name__)

ACTION_VIEW = "view"
ACTION_DOWNLOAD = "download"
ACTIONS = (ACTION_VIEW, ACTION_DOWNLOAD)


def log_access(
    s: Session,
    *,
    investor_id: int,
    file_id: int,
    action: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AccessLog:
    if action not in ACTIONS:
        raise ValueError(f"Unsupported access action: {action!r}")

    log = AccessLog(
        investor_id=investor_id,
        file_id=file_id,
        action=action,
        started_at=datetime.utcnow(),
        duration=0,
        ip_address=ip_address[:IP_ADDRESS_MAX_LENGTH] if ip_address else None,
        user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
    )
    s.add(log)

    investor = s.get(Investor, investor_id)
    if investor is not None:
        new_status = advance(investor.status, EVENT_ACCESS)
        if new_status != investor.status:
            logger.info("Investor %s promoted %s -> %s on first access", investor_id, investor.status, new_status)
            investor.status = new_status

    s.flush()
    return log


def update_duration(s: Session, access_log_id: int, duration: int | float) -> AccessLog:
    log = s.get(AccessLog, access_log_id)
    if log is None:
        raise LookupError(f"Access log {access_log_id} not found")
    if isinstance(duration, float) and not math.isfinite(duration):
        raise ValueError(f"Duration out of range: {duration!r}")
    if not 0 <= duration <= MAX_DURATION_SECONDS:
        raise ValueError(f"Duration out of range: {duration!r}")
    log.duration = int(round(duration))
    return log


# ---------------------------------------------------------------------------
# Reporting projections
# ---------------------------------------------------------------------------


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def access_stats(logs: list[AccessLog]) -> dict[str, Any]:
    """Fold one investor's access logs into the counters shown in admin lists."""
    views = [l for l in logs if l.action == ACTION_VIEW]
    last = max(logs, key=lambda l: l.started_at) if logs else None
    return {
        "views": len(views),
        "downloads": sum(1 for l in logs if l.action == ACTION_DOWNLOAD),
        "files_viewed": len({l.file_id for l in views}),
        "time_spent": sum(l.duration or 0 for l in views),
        "last_active": last.started_at if last else None,
    }


def investor_analytics(s: Session) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    investors = s.query(Investor).options(selectinload(Investor.access_logs)).order_by(Investor.email.asc()).all()
    for investor in investors:
        stats = access_stats(investor.access_logs)
        out.append(
            {
                "id": investor.id,
                "email": investor.email,
                "name": investor.name,
                "status": investor.status,
                "ndaAcceptedAt": _iso(investor.nda_accepted_at),
                "totalFilesViewed": stats["files_viewed"],
                "totalTimeSpent": stats["time_spent"],
                "totalDownloads": stats["downloads"],
                "lastActive": _iso(stats["last_active"]),
            }
        )
    return out


def file_analytics(s: Session) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for f in s.query(File).options(selectinload(File.access_logs)).order_by(File.name.asc()).all():
        views = [l for l in f.access_logs if l.action == ACTION_VIEW]
        downloads = [l for l in f.access_logs if l.action == ACTION_DOWNLOAD]
        avg = (sum(l.duration or 0 for l in views) / len(views)) if views else 0
        out.append(
            {
                "id": f.id,
                "name": f.name,
                "category": f.category,
                "uniqueViewers": len({l.investor_id for l in views}),
                "totalViews": len(views),
                "avgViewDuration": round(avg),
                "totalDownloads": len(downloads),
            }
        )
    return out


def daily_activity(s: Session, days: int = 30, *, now: datetime | None = None) -> list[dict[str, Any]]:
    since = (now or datetime.utcnow()) - timedelta(days=days)
    logs = (
        s.query(AccessLog)
        .filter(AccessLog.started_at >= since)
        .order_by(AccessLog.started_at.asc())
        .all()
    )
    daily: OrderedDict[str, dict[str, int]] = OrderedDict()
    for log in logs:
        day = log.started_at.date().isoformat()
        bucket = daily.setdefault(day, {"views": 0, "downloads": 0})
        if log.action == ACTION_VIEW:
            bucket["views"] += 1
        elif log.action == ACTION_DOWNLOAD:
            bucket["downloads"] += 1
    return [{"date": day, **counts} for day, counts in daily.items()]


def summary_counts(s: Session) -> dict[str, int]:
    def _count_action(action: str) -> int:
        return s.query(func.count(AccessLog.id)).filter(AccessLog.action == action).scalar() or 0

    return {
        "totalInvestors": s.query(func.count(Investor.id)).scalar() or 0,
        "activeInvestors": s.query(func.count(Investor.id)).filter(Investor.status == "active").scalar() or 0,
        "totalFiles": s.query(func.count(File.id)).scalar() or 0,
        "totalViews": _count_action(ACTION_VIEW),
        "totalDownloads": _count_action(ACTION_DOWNLOAD),
    }


_LOG_PARTIES = (selectinload(AccessLog.investor), selectinload(AccessLog.file))


def _log_row(log: AccessLog) -> dict[str, Any]:
    return {
        "id": log.id,
        "investorEmail": log.investor.email if log.investor else None,
        "investorName": log.investor.name if log.investor else None,
        "fileName": log.file.name if log.file else None,
        "category": log.file.category if log.file else None,
        "action": log.action,
        "startedAt": _iso(log.started_at),
        "duration": log.duration,
    }


def recent_activity(s: Session, limit: int = 100) -> list[dict[str, Any]]:
    logs = (
        s.query(AccessLog)
        .options(*_LOG_PARTIES)
        .order_by(AccessLog.started_at.desc(), AccessLog.id.desc())
        .limit(limit)
        .all()
    )
    return [_log_row(l) for l in logs]


def paginated_activity(
    s: Session,
    *,
    page: int = 1,
    limit: int = 20,
    action: str | None = None,
) -> dict[str, Any]:
    page = max(1, page)
    limit = min(100, max(1, limit))
    q = s.query(AccessLog)
    if action in ACTIONS:
        q = q.filter(AccessLog.action == action)
    total = q.count()
    logs = (
        q.options(*_LOG_PARTIES)
        .order_by(AccessLog.started_at.desc(), AccessLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "logs": [_log_row(l) for l in logs],
        "total": total,
        "page": page,
        "totalPages": (total + limit - 1) // limit,
    }


EXPORT_HEADERS = [
    "Date",
    "Investor Email",
    "Investor Name",
    "File Name",
    "Category",
    "Action",
    "Duration (seconds)",
    "IP Address",
]


def export_access_logs_csv(s: Session) -> str:
    logs = (
        s.query(AccessLog)
        .options(*_LOG_PARTIES)
        .order_by(AccessLog.started_at.desc(), AccessLog.id.desc())
        .all()
    )
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for log in logs:
        writer.writerow(
            [
                _iso(log.started_at),
                log.investor.email,
                log.investor.name or "",
                log.file.name,
                log.file.category,
                log.action,
                str(log.duration or 0),
                log.ip_address or "",
            ]
        )
    return buf.getvalue()
