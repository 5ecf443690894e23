from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import abort, g
from sqlalchemy.orm import Session

from app.dataroom.models import AdminUser, Investor
from app.dataroom.statuses import has_dataroom_access


@dataclass(frozen=True)
class Viewer:
    """
    The caller of a dataroom request. Someone can be an admin, an investor, or
    both; being both never unlocks clean (unwatermarked) copies.
    """

    email: str
    admin: AdminUser | None = None
    investor: Investor | None = None

    @property
    def is_admin(self) -> bool:
        return self.admin is not None

    @property
    def is_investor(self) -> bool:
        return self.investor is not None

    @property
    def label(self) -> str:
        """Text burned into watermarks."""
        return self.email

    @property
    def cache_key(self) -> str:
        """Distinguishes per-viewer renditions; admin-only viewers get their own key too."""
        if self.investor is not None:
            return f"inv-{self.investor.id}"
        if self.admin is not None:
            return f"adm-{self.admin.id}"
        raise ValueError("Viewer has neither an investor nor an admin record")

    @property
    def can_access_documents(self) -> bool:
        if self.is_admin:
            return True
        return self.investor is not None and has_dataroom_access(self.investor.status)


def resolve_viewer(s: Session, email: str | None) -> Viewer | None:
    email = (email or "").strip().lower()
    if not email:
        return None
    investor = s.query(Investor).filter(Investor.email == email).one_or_none()
    admin = s.query(AdminUser).filter(AdminUser.email == email).one_or_none()
    return Viewer(email=email, admin=admin, investor=investor)


def _viewer_or_abort() -> Viewer:
    viewer: Viewer | None = getattr(g, "viewer", None)
    if viewer is None:
        abort(401)
    if not viewer.is_admin and not viewer.is_investor:
        abort(403)
    return viewer


def require_viewer(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        _viewer_or_abort()
        return fn(*args, **kwargs)

    return wrapped


def require_document_access(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Admins, or investors whose status grants dataroom access (post-NDA, not dropped)."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        viewer = _viewer_or_abort()
        if not viewer.can_access_documents:
            g.forbidden_reason = "NDA not accepted"
            abort(403)
        return fn(*args, **kwargs)

    return wrapped


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        viewer = _viewer_or_abort()
        if not viewer.is_admin:
            abort(403)
        return fn(*args, **kwargs)

    return wrapped
