"""
Database Configuration
Engine construction and schema creation shared by the app, the tests and Alembic.
"""

import logging
import os

from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine.
    SQLite in-memory URLs share ONE connection (StaticPool) so every
    session sees the same database; file URLs get their directory created.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool, echo=echo)

    path = database_url.replace("sqlite:///", "", 1)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args, echo=echo)


def create_schema(engine: Engine) -> None:
    """Create all database tables"""
    SQLModel.metadata.create_all(engine)
    logger.info("Schema ready on %s", engine.url.render_as_string(hide_password=True))
