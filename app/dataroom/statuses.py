"""
Investor access states.

invited -> nda_accepted -> active -> termsheet_sent -> termsheet_signed -> docs_out
(dropped can be set by an admin from anywhere; "revoked" is its legacy spelling.)

Two transitions happen automatically: accepting the NDA moves an invited
investor to "nda_accepted", and their first document access then promotes them
to "active". Everything after "active" is set by hand.
"""
from __future__ import annotations

INVESTOR_STATUSES = (
    "invited",
    "nda_accepted",
    "active",
    "termsheet_sent",
    "termsheet_signed",
    "docs_out",
    "dropped",
)

STATUS_LABELS = {
    "invited": "Invited",
    "nda_accepted": "NDA Accepted",
    "active": "Active",
    "termsheet_sent": "Termsheet Sent",
    "termsheet_signed": "Termsheet Signed",
    "docs_out": "Docs Out",
    "dropped": "Dropped",
    # Legacy
    "revoked": "Dropped",
}

# Statuses an admin can set manually.
MANUAL_STATUSES = ("termsheet_sent", "termsheet_signed", "docs_out", "dropped")

# Events that can drive an automatic transition.
EVENT_ACCESS = "access"
EVENT_NDA_ACCEPT = "nda_accept"

_AUTOMATIC_TRANSITIONS = {
    ("invited", EVENT_NDA_ACCEPT): "nda_accepted",
    ("nda_accepted", EVENT_ACCESS): "active",
}


def has_dataroom_access(status: str | None) -> bool:
    """Everything after the NDA grants access, except dropped (and legacy revoked)."""
    if not status:
        return False
    return status not in ("invited", "dropped", "revoked")


def advance(current_status: str, event: str) -> str:
    """
    Pure transition function. Returns the status that follows `current_status`
    when `event` happens; unknown pairs leave the status unchanged (never demotes).
    """
    return _AUTOMATIC_TRANSITIONS.get((current_status, event), current_status)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)
