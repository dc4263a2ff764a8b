# minimentor/db_helpers.py
import logging
from typing import Callable

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from minimentor.entities import Base

logger = logging.getLogger("minimentor")


def get_db_engine(database_url: str):
    if database_url.startswith("sqlite"):
        logger.info(f"[DB] Using SQLite URL: {database_url}")
        return create_engine(database_url, future=True)

    logger.info("[DB] Connecting to %s", database_url.split("@")[-1])
    return create_engine(database_url, future=True, pool_pre_ping=True)


def build_db_session_factory(database_url: str) -> Callable[[], Session]:
    engine = get_db_engine(database_url)
    Base.metadata.create_all(engine)
    _sessionmaker = sessionmaker(
        bind=engine,
        autoflush=False,
        future=True,
    )

    def _factory() -> Session:
        return _sessionmaker()

    return _factory
