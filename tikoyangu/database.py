import structlog
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tikoyangu.core.config import settings
from tikoyangu.models.base import Base

logger = structlog.get_logger(__name__)


def _connect_args(url: str) -> dict:
    # request handlers run in a thread pool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


db_engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    import tikoyangu.models  # noqa: F401

    if settings.ENV in ("dev", "test"):
        Base.metadata.create_all(bind=db_engine)
        logger.info("tables_ensured", env=settings.ENV)
    else:
        logger.info("schema_managed_by_alembic", env=settings.ENV)
