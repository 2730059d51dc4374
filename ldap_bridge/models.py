from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRecord(Base):
    """Local user record kept in sync with the directory on every login."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    is_administrator: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    enable_all_folders: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    enabled_folders_raw: Mapped[str] = mapped_column(Text, default="", nullable=False)  # ';' separated

    auth_provider_id: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    password_reset_provider_id: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def enabled_folders(self) -> list[str]:
        return [x.strip() for x in (self.enabled_folders_raw or "").split(";") if x.strip()]

    @enabled_folders.setter
    def enabled_folders(self, folders: list[str]) -> None:
        self.enabled_folders_raw = ";".join(f.strip() for f in folders if f and f.strip())


class LoginAudit(Base):
    __tablename__ = "login_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    username: Mapped[str] = mapped_column(String(255), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    ip: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    user_agent: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    result_code: Mapped[str] = mapped_column(String(32), default="", nullable=False)  # ok|invalid_credentials|...
    details: Mapped[str] = mapped_column(String(512), default="", nullable=False)
