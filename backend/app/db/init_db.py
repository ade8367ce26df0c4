# backend/app/db/init_db.py
from pathlib import Path

from sqlalchemy.engine import Engine

from app.db.base import Base
from app.db.session import engine as default_engine

# import models so SQLAlchemy registers every table on Base.metadata
from app import models  # noqa: F401


def init_db(bind: Engine | None = None) -> None:
    bind = bind or default_engine
    if bind.url.get_backend_name() == "sqlite" and bind.url.database not in (None, "", ":memory:"):
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind)
