from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
import logging

from teeprice import config

logger = logging.getLogger(__name__)

Base = declarative_base()


def _normalize_database_url(url: str | None) -> str | None:
    """
    Hosted Postgres URLs often come as:
      - postgres://...
      - postgresql://...

    SQLAlchemy's default driver for those schemes is psycopg2; normalize to
    `postgresql+psycopg://...` (psycopg 3) unless a driver is already given.
    """
    if not url:
        return url
    raw = url.strip()
    if not raw:
        return raw
    if raw.startswith("postgresql+"):
        return raw
    if raw.startswith("postgres://"):
        return "postgresql+psycopg://" + raw[len("postgres://") :]
    if raw.startswith("postgresql://"):
        return "postgresql+psycopg://" + raw[len("postgresql://") :]
    return raw


def _connect_args_for(url: str) -> dict:
    if not url:
        return {}
    if url.startswith("postgresql+psycopg"):
        # PgBouncer in transaction mode breaks server-side prepared statements.
        return {"prepare_threshold": None}
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def _engine_info(engine) -> dict:
    url = engine.url
    return {
        "driver": getattr(url, "drivername", None),
        "host": getattr(url, "host", None),
        "port": getattr(url, "port", None),
        "database": getattr(url, "database", None),
    }


def build_engine(url: str | None = None):
    """
    Create the engine for the pricing document store.

    Uses `url`, else DATABASE_URL, else the SQLite fallback. The connection is
    checked once so a bad URL fails here rather than on the first save.
    """
    url = _normalize_database_url(url or config.DATABASE_URL) or config.SQLITE_FALLBACK_URL
    engine = create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        connect_args=_connect_args_for(url),
    )
    with engine.connect() as conn:
        conn.execute(text("select 1"))
    info = _engine_info(engine)
    logger.info(
        "[DB] Active database: driver=%s host=%s port=%s db=%s",
        info["driver"], info["host"], info["port"], info["database"],
    )
    return engine


def build_session_factory(engine):
    # Tables are created on first use; there is no migration tool.
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
