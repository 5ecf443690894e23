from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dataroom.models import Base, Investor
from app.dataroom.modules.files.models import File

IP_ADDRESS_MAX_LENGTH = 64
USER_AGENT_MAX_LENGTH = 512
# Upper bound of the Integer duration column.
MAX_DURATION_SECONDS = 2**31 - 1


class AccessLog(Base):
    """
    One view or download of a file by an investor.
    Append-only except for `duration`, which heartbeats overwrite.
    """

    __tablename__ = "access_logs"
    __table_args__ = (
        Index("idx_access_logs_started_at", "started_at"),
        Index("idx_access_logs_investor", "investor_id"),
        Index("idx_access_logs_file", "file_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    investor_id: Mapped[int] = mapped_column(ForeignKey("investors.id", ondelete="CASCADE"), nullable=False)
    file_id: Mapped[int] = mapped_column(ForeignKey("files.id", ondelete="CASCADE"), nullable=False)

    action: Mapped[str] = mapped_column(String(16), nullable=False)  # "view" | "download"
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds

    ip_address: Mapped[str | None] = mapped_column(String(IP_ADDRESS_MAX_LENGTH), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(USER_AGENT_MAX_LENGTH), nullable=True)

    investor: Mapped[Investor] = relationship("Investor", back_populates="access_logs")
    file: Mapped[File] = relationship("File", back_populates="access_logs")
