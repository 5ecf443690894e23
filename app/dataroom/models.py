from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Investor(Base):
    __tablename__ = "investors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    firm: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # invited -> nda_accepted -> active -> termsheet_sent -> ... (see statuses.py)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="invited")
    nda_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    nda_accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # NDA consent record.
    nda_ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    nda_user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    nda_template_id: Mapped[int | None] = mapped_column(
        ForeignKey("nda_templates.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    access_logs: Mapped[list["AccessLog"]] = relationship(
        "AccessLog",
        back_populates="investor",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AdminUser(Base):
    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    """
    Append-only audit trail for administrative actions (upload, delete, export).
    Investor document access is recorded separately in access_logs.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "file.upload"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "File"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.dataroom.modules.files.models import File  # noqa: E402,F401
from app.dataroom.modules.tracking.models import AccessLog  # noqa: E402,F401
from app.dataroom.modules.investors.models import NdaTemplate  # noqa: E402,F401
