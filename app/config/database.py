"""Engine, session factory and the request-scoped session dependency"""
import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from app.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(database_url: str, config: Optional[Settings] = None) -> Engine:
    """
    Create an engine for the given URL.

    SQLite (local runs and tests) gets a busy timeout so concurrent writers
    queue on the database lock; every other backend gets a pre-pinged pool.
    """
    config = config or settings
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": config.SQLITE_BUSY_TIMEOUT},
            echo=False,
        )

    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=False,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """Create missing booking tables; existing ones are left untouched"""
    from app.models import Base

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Booking tables ready on {target.url.render_as_string(hide_password=True)}")


if __name__ == "__main__":
    create_tables()
