"""SQLAlchemy models for enrolled identities."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for ORM models."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class IdentityRow(Base):
    """A console user, optionally with one enrolled face descriptor.

    ``face_descriptor`` holds the 128 floats as JSON text. It is written only by
    a successful enrollment, which also stamps ``face_enrolled_at``.
    """

    __tablename__ = "identities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), index=True)
    role: Mapped[str] = mapped_column(String(64))
    face_descriptor: Mapped[str | None] = mapped_column(Text, nullable=True)
    face_enrolled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
