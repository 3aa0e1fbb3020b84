"""
Database engine and session management.

Uses SQLAlchemy 2.x style with DeclarativeBase.
"""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from utils.logger import get_logger

logger = get_logger("database")


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, preparing the SQLite directory if needed."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        db_file = url.split("///", 1)[-1] if "///" in url else ""
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)

    kwargs = {}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool

    return create_engine(
        url,
        pool_pre_ping=not url.startswith("sqlite"),
        echo=echo,
        connect_args=connect_args,
        **kwargs,
    )


def init_db(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    # Import models so they register with Base.metadata
    from database import whitelist  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.debug(f"Database schema ready at {engine.url.render_as_string(hide_password=True)}")


def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
