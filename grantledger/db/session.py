from __future__ import annotations

from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from grantledger.core.config import get_settings
from grantledger.core.tx import reset_atomic_depth

settings = get_settings()

DATABASE_URL = settings.database_url  # fail fast if missing


def _engine_options(url: str) -> Dict[str, Any]:
    # sqlite sessions are handed across the threadpool by sync routes
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_engine(DATABASE_URL, future=True, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        reset_atomic_depth(db)
        db.close()
