import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.dataroom.models import AuditEvent
from app.dataroom.modules.files.service import client_ip


def record_event(
    s: Session,
    *,
    actor_email: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Add an admin-action audit row to `s`. The caller commits.
    Outside a request (scripts, tests) request id and client IP stay empty.
    """
    ev = AuditEvent(
        actor_email=actor_email,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
    )
    if has_request_context():
        ev.request_id = request_id or getattr(g, "request_id", None)
        ev.client_ip = client_ip(request)
    else:
        ev.request_id = request_id
    s.add(ev)
    return ev
