from __future__ import annotations

import logging
from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from palletpro.config import settings
from palletpro.models import Base

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True}


engine = create_engine(settings.database_url_normalized, **_engine_kwargs(settings.database_url_normalized))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine) -> None:
    """Create any missing tables; existing tables are left untouched."""
    try:
        Base.metadata.create_all(bind=bind)
    except Exception:
        logger.exception('Could not create the %s schema', bind.dialect.name)
        raise
    logger.info('Database schema ready on %s', bind.dialect.name)
