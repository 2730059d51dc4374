from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import sessionmaker

from .models import UserRecord
from .repo import db_session, get_user_by_name


class UserStore(Protocol):
    """Host-owned user records, as seen by the authentication provider."""

    def find_by_username(self, username: str) -> UserRecord | None: ...

    def create(self, username: str) -> UserRecord: ...

    def update(self, record: UserRecord) -> None: ...


class SqlUserStore:
    """:class:`UserStore` over SQLAlchemy; records are returned detached."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def find_by_username(self, username: str) -> UserRecord | None:
        with db_session(self._session_factory) as db:
            return get_user_by_name(db, username)

    def create(self, username: str) -> UserRecord:
        with db_session(self._session_factory) as db:
            record = UserRecord(username=username)
            db.add(record)
            db.commit()
            db.refresh(record)
            return record

    def update(self, record: UserRecord) -> None:
        record.updated_at = datetime.utcnow()
        with db_session(self._session_factory) as db:
            db.merge(record)
            db.commit()
