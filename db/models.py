from __future__ import annotations

from sqlalchemy import BigInteger, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class AttendanceEventHistory(Base):
    __tablename__ = "attendance_event_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    event_name: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    verification_role_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    monitored_role_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


REQUIRED_BOOT_TABLES = frozenset({AttendanceEventHistory.__tablename__})
