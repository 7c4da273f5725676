# chat_archiver/database.py
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from chat_archiver.config import settings

Base = declarative_base()


def build_engine(database_url: str):
    """Create an engine; SQLite gets foreign keys switched on."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


engine = build_engine(settings.database_url)
