"""Persistence of discovered packages and their metric snapshots.

This is the only component that writes package, package_version and
package_snapshot rows. Every public method runs in its own transaction, so a
failure while handling one package never rolls back another package's
writes; batch callers log and move on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from dubstats.db.schema import package, package_snapshot, package_version
from dubstats.errors import NotFoundError
from dubstats.models.registry import PackageStats

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SnapshotWriter:
    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.engine = engine
        self.clock = clock

    def upsert_package(self, name: str) -> bool:
        """Insert the package unless a row with this name exists.

        Returns True when a row was created. Concurrent or repeated calls with
        the same name never raise and never duplicate the row.
        """
        values = {"name": name, "next_update": self.clock()}
        dialect = self.engine.dialect.name
        if dialect in ("postgresql", "sqlite"):
            dialect_insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            stmt = dialect_insert(package).values(**values).on_conflict_do_nothing(index_elements=["name"])
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
            created = result.rowcount == 1
        else:
            try:
                with self.engine.begin() as conn:
                    conn.execute(insert(package).values(**values))
                created = True
            except IntegrityError:
                created = False
        if created:
            logger.info("Added package=%s", name)
        else:
            logger.debug("Package already known package=%s", name)
        return created

    def ensure_version(self, package_name: str, version: str) -> int:
        """Return the id of the package's latest version row, appending one if ``version`` is new."""
        with self.engine.begin() as conn:
            package_id = self._package_id(conn, package_name)
            latest = conn.execute(
                select(package_version.c.id, package_version.c.version)
                .where(package_version.c.package_id == package_id)
                .order_by(package_version.c.id.desc())
                .limit(1)
            ).first()
            if latest is not None and latest.version == version:
                return latest.id
            result = conn.execute(insert(package_version).values(package_id=package_id, version=version))
            version_id = result.inserted_primary_key[0]
        logger.info("Recorded version package=%s version=%s", package_name, version)
        return version_id

    def record_snapshot(
        self,
        package_name: str,
        stats: PackageStats,
        *,
        observed_at: Optional[datetime] = None,
    ) -> int:
        """Append one snapshot to the latest version of ``package_name``.

        Contract:
        - The latest version is the package_version row with the highest id.
        - Raises NotFoundError (writing nothing) if the package or any version is unknown.
        - Raises ValueError if ``observed_at`` is older than the newest snapshot of that version.
        """
        observed_at = _as_utc(observed_at or self.clock())
        with self.engine.begin() as conn:
            version_id = conn.execute(
                select(package_version.c.id)
                .join(package, package.c.id == package_version.c.package_id)
                .where(package.c.name == package_name)
                .order_by(package_version.c.id.desc())
                .limit(1)
            ).scalar()
            if version_id is None:
                raise NotFoundError(f"No recorded version for package {package_name!r}")

            newest = conn.execute(
                select(package_snapshot.c.time)
                .where(package_snapshot.c.package_version_id == version_id)
                .order_by(package_snapshot.c.time.desc())
                .limit(1)
            ).scalar()
            if newest is not None and observed_at < _as_utc(newest):
                raise ValueError(
                    f"Snapshot for {package_name!r} at {observed_at.isoformat()} predates the newest one"
                )

            result = conn.execute(
                insert(package_snapshot).values(
                    package_version_id=version_id,
                    time=observed_at,
                    downloads_weekly=stats.downloads.weekly,
                    downloads_monthly=stats.downloads.monthly,
                    downloads_total=stats.downloads.total,
                    stars=stats.repo.stars,
                    watchers=stats.repo.watchers,
                    issues=stats.repo.issues,
                    forks=stats.repo.forks,
                )
            )
            snapshot_id = result.inserted_primary_key[0]
        logger.debug("Recorded snapshot package=%s version_id=%s", package_name, version_id)
        return snapshot_id

    def due_packages(self, *, now: Optional[datetime] = None, limit: int = 50) -> List[str]:
        """Names of packages whose next_update has passed, oldest first."""
        now = now or self.clock()
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(package.c.name)
                .where(package.c.next_update <= now)
                .order_by(package.c.next_update, package.c.id)
                .limit(limit)
            )
            return [r.name for r in rows]

    def schedule_next_update(self, package_name: str, when: datetime) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(package).where(package.c.name == package_name).values(next_update=when)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Unknown package {package_name!r}")

    @staticmethod
    def _package_id(conn: Connection, package_name: str) -> int:
        package_id = conn.execute(select(package.c.id).where(package.c.name == package_name)).scalar()
        if package_id is None:
            raise NotFoundError(f"Unknown package {package_name!r}")
        return package_id
