from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
import os

# DATABASE_URL defaults to a local SQLite file at ./data.db.
# Override via the DATABASE_URL environment variable for staging/production.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.db")


def make_engine(url: str) -> Engine:
    """
    Build a SQLAlchemy engine with backend-specific settings.

    - SQLite (dev/local/tests): allow cross-thread access and turn on foreign keys per connection,
      so ON DELETE CASCADE behaves like it does on server databases.
    - Server DBs (e.g., MySQL/Postgres): enable safe pooling to avoid stale or dropped connections under load.
    """
    if url.startswith("sqlite"):
        eng = create_engine(url, connect_args={"check_same_thread": False})

        @event.listens_for(eng, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return eng
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=280,  # recycle connections periodically to prevent 'MySQL server has gone away'
        pool_size=10,
        max_overflow=20,
    )


engine = make_engine(DATABASE_URL)

# Session factory: one session per unit of work; autocommit and autoflush disabled for explicit transaction control
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models declared via SQLAlchemy's declarative API
Base = declarative_base()
