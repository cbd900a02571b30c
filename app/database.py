"""
Direct database access used for schema bootstrap.

Request handling goes through the Supabase REST store; only the schema
bootstrap script opens a SQLAlchemy connection.
"""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Engine

from app.config import settings
from app.models import CONFIG_MAX_CONCURRENT, Base, ConfigEntry


@lru_cache
def get_engine() -> Engine:
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=False,
    )


def init_db(engine: Engine | None = None) -> None:
    """
    Create the dispatch tables and seed the concurrency limit if it is missing.
    """
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)

    with engine.begin() as connection:
        connection.execute(
            insert(ConfigEntry.__table__)
            .values(key=CONFIG_MAX_CONCURRENT, value=settings.default_max_concurrent)
            .on_conflict_do_nothing(index_elements=["key"])
        )


