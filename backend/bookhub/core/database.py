import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bookhub.core.config import settings
from bookhub.models.base import Base


logger = logging.getLogger(__name__)

connect_args = {}
if settings.database_url.startswith("sqlite"):
    # SQLite connections are shared across the threadpool that serves sync routes
    connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    # Create tables in dev/test without running migrations
    if settings.env in {"dev", "test"}:
        import bookhub.models  # noqa: F401  registers every table on Base.metadata

        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured for env=%s", settings.env)
