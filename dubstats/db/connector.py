from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from dubstats.config import DatabaseCredentials, Settings


def database_url(credentials: DatabaseCredentials, settings: Settings) -> URL:
    return URL.create(
        "postgresql+psycopg",
        username=credentials.user,
        password=credentials.password,
        host=credentials.hostname,
        port=credentials.port,
        database=settings.db_name,
        query={"sslmode": settings.db_sslmode},
    )


def create_db_engine(credentials: DatabaseCredentials, settings: Settings) -> Engine:
    """Create the process-wide engine and verify the database answers.

    Raises a RuntimeError with an actionable message when the database is unreachable.
    """
    url = database_url(credentials, settings)
    try:
        engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_size=1,
            max_overflow=0,
            connect_args={"connect_timeout": settings.db_connect_timeout},
        )
    except Exception as exc:
        raise RuntimeError(
            f"Failed to create database engine for '{credentials.hostname}/{settings.db_name}'.\nError: {exc}"
        ) from exc
    ping(engine)
    return engine


def ping(engine: Engine) -> None:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise RuntimeError(
            f"Could not connect to database at '{engine.url.host}'. "
            f"Check that it is running and the credentials are correct.\nError: {exc}"
        ) from exc
