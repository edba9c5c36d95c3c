"""
Database configuration and session management
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import DatabaseConfig

logger = logging.getLogger("cronmetrics.db")

# Create base class for models
Base = declarative_base()

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "alembic"


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(cfg: DatabaseConfig) -> Engine:
    if cfg.url.startswith("sqlite"):
        # SQLite needs special connect args; `timeout` is its busy timeout
        if cfg.url.startswith("sqlite:///") and ":memory:" not in cfg.url:
            Path(cfg.url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            cfg.url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": cfg.timeout},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        cfg.url,
        pool_pre_ping=True,
        pool_size=cfg.pool_size,
        max_overflow=cfg.max_overflow,
        pool_timeout=cfg.timeout,
    )


class Database:
    """Engine plus session factory for one configured database"""

    def __init__(self, cfg: DatabaseConfig):
        self.cfg = cfg
        self.engine = build_engine(cfg)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    def init_schema(self) -> None:
        """Create tables, through alembic when auto_migrate is enabled"""
        if self.cfg.auto_migrate:
            self.upgrade()
            return
        # Make sure all models are imported so Base.metadata is populated
        from . import models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)
        logger.info("database schema ready", extra={"component": "db"})

    def upgrade(self, revision: str = "head") -> None:
        from alembic import command
        from alembic.config import Config

        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        alembic_cfg.set_main_option("sqlalchemy.url", self.cfg.url)
        command.upgrade(alembic_cfg, revision)
        logger.info("alembic upgrade %s OK", revision, extra={"component": "db"})

    def dispose(self) -> None:
        self.engine.dispose()
