"""SQLAlchemy engine and session setup."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.types import TypeDecorator

from riadsync.config import get_database_url


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Store naive UTC, hand back aware UTC.

    SQLite drops tzinfo, so without this a value read back from the database
    could not be compared with an instant decoded from a feed.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


engine = create_engine(
    get_database_url(),
    echo=False,
    connect_args={"check_same_thread": False},  # SQLite needs this for multi-thread
)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session() -> Session:
    """Create a new database session."""
    return SessionLocal()


def init_db() -> None:
    """Create all tables. Import models first so they register with Base."""
    # Import all models to ensure they are registered
    import riadsync.models.booking  # noqa: F401
    import riadsync.models.conflict  # noqa: F401
    import riadsync.models.feed  # noqa: F401
    import riadsync.models.property  # noqa: F401

    Base.metadata.create_all(bind=engine)
