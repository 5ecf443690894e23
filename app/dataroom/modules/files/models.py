from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.dataroom.models import Base


class File(Base):
    """
    A dataroom document. Immutable once uploaded; the only mutation is deletion,
    which also removes its access logs and any cached video renditions.
    """

    __tablename__ = "files"
    __table_args__ = (
        Index("idx_files_category", "category"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)  # display / download name
    storage_path: Mapped[str] = mapped_column(String(512), nullable=False)  # storage key
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    access_logs: Mapped[list["AccessLog"]] = relationship(  # noqa: F821
        "AccessLog",
        back_populates="file",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "category": self.category,
            "uploadedAt": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
