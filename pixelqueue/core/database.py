"""
Database Configuration
SQLAlchemy engine and session management.
Supports both SQLite (local dev) and PostgreSQL (production).
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


class Database:
    """
    Owns one SQLAlchemy engine and its session factory.

    Built once per process at startup and disposed on shutdown; components
    receive it explicitly instead of importing a module-level engine.
    """

    def __init__(self, url: str):
        self.url = url
        self.is_sqlite = url.startswith("sqlite")

        if self.is_sqlite:
            # SQLite settings
            self.engine = create_engine(
                url,
                connect_args={"check_same_thread": False},  # Needed for SQLite
            )
        else:
            # PostgreSQL settings
            self.engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20,
            )

        # Objects stay readable after the session that loaded them closes
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def init_db(self):
        """Initialize database tables."""
        from pixelqueue.models import Job  # noqa
        Base.metadata.create_all(bind=self.engine)
        logger.info("'jobs' table ensured to exist")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        """Run a trivial query and report the outcome."""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "error", "error": str(e)}

    def dispose(self):
        """Close all pooled connections."""
        self.engine.dispose()
        logger.info("Database engine disposed")
