"""SQLAlchemy ORM models for the lock's persistent cache."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from smartlock.database import Base


class CacheBlob(Base):
    """One named, JSON-encoded list of records (``users`` or ``logs``)."""

    __tablename__ = "cache_blobs"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    record_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
