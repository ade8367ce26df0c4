# backend/app/db/base.py
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # naive UTC, matching what DateTime columns round-trip through SQLite/MySQL
    return datetime.now(timezone.utc).replace(tzinfo=None)
