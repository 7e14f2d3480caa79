"""Relational schema written by the ingestion worker.

The production schema is owned by the migration runner; these table
definitions mirror it so statements can be built with SQLAlchemy Core, and
`create_schema` exists for tests and local databases.
"""

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Engine


metadata = MetaData()

# SQLite only autoincrements INTEGER PRIMARY KEY
_Id = BigInteger().with_variant(Integer(), "sqlite")

package = Table(
    "package",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("next_update", DateTime(timezone=True), nullable=False, index=True),
)

package_version = Table(
    "package_version",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("package_id", _Id, ForeignKey("package.id"), nullable=False, index=True),
    Column("version", String(255), nullable=False),
)

package_snapshot = Table(
    "package_snapshot",
    metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("package_version_id", _Id, ForeignKey("package_version.id"), nullable=False, index=True),
    Column("time", DateTime(timezone=True), nullable=False),
    Column("downloads_weekly", Integer, nullable=False, default=0),
    Column("downloads_monthly", Integer, nullable=False, default=0),
    Column("downloads_total", Integer, nullable=False, default=0),
    Column("stars", Integer, nullable=False, default=0),
    Column("watchers", Integer, nullable=False, default=0),
    Column("issues", Integer, nullable=False, default=0),
    Column("forks", Integer, nullable=False, default=0),
)


def create_schema(engine: Engine) -> None:
    """Create the tables if they don't exist."""
    metadata.create_all(bind=engine)
