"""
Database handle for FIDE Ratings.

A Database owns one SQLAlchemy engine and one session factory. It is
constructed explicitly and passed to whatever needs it (importer, API,
scripts) instead of living in a module-level singleton, so tests can
point it at a throwaway SQLite file.

Usage:
    # As a context manager (recommended for scripts)
    from fideratings.db import Database

    with Database() as db:
        with db.session_scope() as session:
            players = session.query(Player).all()
            # Commits automatically on exit, rolls back on exception

    # As a dependency injection (for FastAPI)
    app.state.database = Database(url)

    def list_players(db: Session = Depends(get_db)):
        ...
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from fideratings.config import settings
from fideratings.db.models import Base


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def create_db_engine(url: str, echo: Optional[bool] = None) -> Engine:
    """
    Create a SQLAlchemy engine for SQLite or PostgreSQL.

    PostgreSQL engines get a connection pool with pre-ping. SQLite engines
    get foreign keys enabled and explicit BEGIN handling, which pysqlite
    needs for SAVEPOINTs to behave.
    """
    if echo is None:
        echo = settings.log_level == "DEBUG"  # Log SQL only in debug mode

    if not _is_sqlite(url):
        return create_engine(
            url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,  # Verify connection is alive before using
            echo=echo,
        )

    database = make_url(url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=echo)

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        """Let SQLAlchemy, not pysqlite, decide when transactions begin."""
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


class Database:
    """
    Engine + session factory with an explicit open/close lifecycle.

    The engine is created lazily on first use (or by open()) and disposed
    by close().
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self.url = url or settings.database_url
        self._echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def open(self) -> Engine:
        if self._engine is None:
            self._engine = create_db_engine(self.url, echo=self._echo)
            self._session_factory = sessionmaker(
                autocommit=False,  # We'll handle commits explicitly
                autoflush=False,  # Don't auto-flush before queries (more control)
                expire_on_commit=False,
                bind=self._engine,
            )
        return self._engine

    @property
    def engine(self) -> Engine:
        return self.open()

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

    def __enter__(self) -> "Database":
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def create_all(self) -> None:
        """Create any missing tables (development and tests; use Alembic in production)."""
        Base.metadata.create_all(self.engine)

    def new_session(self) -> Session:
        self.open()
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions.

        Automatically commits on successful exit, rolls back on exception.

        Raises:
            Any exception from the database operation (after rollback)
        """
        session = self.new_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_db(self) -> Generator[Session, None, None]:
        """Request-scoped session for FastAPI's Depends()."""
        db = self.new_session()
        try:
            yield db
        finally:
            db.close()
