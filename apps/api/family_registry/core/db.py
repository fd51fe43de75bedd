from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from family_registry.core.config import settings


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("postgresql"):
        timeout_ms = int(settings.store_timeout_seconds * 1000)
        kwargs["pool_timeout"] = settings.store_timeout_seconds
        kwargs["connect_args"] = {
            "connect_timeout": max(int(settings.store_timeout_seconds), 1),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return kwargs


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
