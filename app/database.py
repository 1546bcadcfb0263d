from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def build_engine(database_url: str, **engine_options) -> Engine:
    # SQLite needs check_same_thread=False: sessions run in the threadpool
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,
        **engine_options,
    )


def build_session_factory(database_url: str) -> sessionmaker | None:
    """Session factory for the cache store, or None when no database is configured."""
    if not database_url:
        return None
    return sessionmaker(autocommit=False, autoflush=False, bind=build_engine(database_url))
