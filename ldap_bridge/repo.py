from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .models import UserRecord


@contextmanager
def db_session(factory: sessionmaker) -> Iterator[Session]:
    db = factory()
    try:
        yield db
    finally:
        db.close()


def get_user_by_name(db: Session, username: str) -> UserRecord | None:
    return db.scalar(select(UserRecord).where(UserRecord.username == username))
