import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from library_backend.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(url: str, timeout_seconds: Optional[float] = None) -> Engine:
    """Build a pooled engine for the given database URL."""
    timeout_seconds = timeout_seconds or settings.request_timeout_seconds

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            # Busy timeout doubles as the per-transaction deadline on SQLite
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
        )

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, connection_record):
            # Let SQLAlchemy drive BEGIN so writers can take the lock up front
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    options = {}
    if settings.db_isolation_level:
        options["isolation_level"] = settings.db_isolation_level

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=False,
        **options,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine = create_db_engine(settings.sqlalchemy_url)

SessionLocal = create_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the users, books and issued_books tables if they are absent."""
    # Models must be imported so their tables are registered on Base.metadata
    import library_backend.models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Database schema ready on {target.url.render_as_string(hide_password=True)}")


@contextmanager
def transaction(
    session_factory: Optional[sessionmaker] = None,
    timeout_seconds: Optional[float] = None,
) -> Iterator[Session]:
    """Open a session scoped to one unit of work.

    Commits when the block exits normally, rolls back on any exception and
    always returns the connection to the pool.
    """
    factory = session_factory or SessionLocal
    with factory() as db:
        with db.begin():
            if db.get_bind().dialect.name == "postgresql":
                timeout_ms = int((timeout_seconds or settings.request_timeout_seconds) * 1000)
                db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
                # statement_timeout covers single statements; this covers the gaps between them
                db.execute(text(f"SET LOCAL idle_in_transaction_session_timeout = {timeout_ms}"))
            yield db
