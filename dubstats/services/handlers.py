"""Command handlers.

A handler receives the command's ``args`` and either returns a summary dict
(success, the message is deleted) or raises (the message is redelivered).
Handlers are idempotent: package upserts ignore known names, and a package's
stats are only refreshed once its next_update has passed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from dubstats.errors import DecodeError, IngestionError
from dubstats.models.commands import StatsArgs
from dubstats.services.crawl.base import Listing
from dubstats.services.crawl.spiders.dub_listing_spider import parse_listing
from dubstats.services.registry_client import RegistryClient
from dubstats.services.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)

UPDATE_PACKAGE_LIST = "update_package_list"
UPDATE_PACKAGE_STATS = "update_package_stats"


class UpdatePackageListHandler:
    """Discover packages from one page of the registry index."""

    def __init__(
        self,
        client: RegistryClient,
        writer: SnapshotWriter,
        *,
        skip: int = 0,
        limit: int = 10,
        parser: Callable[[str], List[Listing]] = parse_listing,
    ) -> None:
        self.client = client
        self.writer = writer
        self.skip = skip
        self.limit = limit
        self.parser = parser

    def __call__(self, args: Any = None) -> Dict[str, int]:
        # args are not used by this command
        document = self.client.fetch_listing_page(self.skip, self.limit)
        listings = self.parser(document)

        created = 0
        failed = 0
        for listing in listings:
            try:
                if self.writer.upsert_package(listing.name):
                    created += 1
            except SQLAlchemyError:
                failed += 1
                logger.exception("Failed to add package into database package=%s", listing.name)

        logger.info("Package list has been refreshed listed=%d created=%d failed=%d", len(listings), created, failed)
        return {"listed": len(listings), "created": created, "failed": failed}


class UpdatePackageStatsHandler:
    """Take a snapshot of every package whose next_update has passed."""

    def __init__(
        self,
        client: RegistryClient,
        writer: SnapshotWriter,
        *,
        batch_size: int = 50,
        interval: timedelta = timedelta(hours=24),
        retry: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.client = client
        self.writer = writer
        self.batch_size = batch_size
        self.interval = interval
        self.retry = min(retry, interval)
        self.clock = clock

    def __call__(self, args: Any = None) -> Dict[str, int]:
        limit = self._parse_args(args).limit or self.batch_size
        now = self.clock()
        names = self.writer.due_packages(now=now, limit=limit)

        updated = 0
        failed = 0
        for name in names:
            try:
                self._refresh(name, now)
                updated += 1
            except (IngestionError, SQLAlchemyError, ValueError) as exc:
                failed += 1
                logger.error("Failed to refresh package stats package=%s: %s", name, exc)
                self._postpone(name, now + self.retry)

        logger.info("Package stats refreshed due=%d updated=%d failed=%d", len(names), updated, failed)
        return {"due": len(names), "updated": updated, "failed": failed}

    def _refresh(self, name: str, now: datetime) -> None:
        version = self.client.fetch_latest_version(name)
        self.writer.ensure_version(name, version)
        stats, _info = self.client.fetch_metrics(name, version)
        self.writer.record_snapshot(name, stats, observed_at=now)
        self.writer.schedule_next_update(name, now + self.interval)

    def _postpone(self, name: str, when: datetime) -> None:
        try:
            self.writer.schedule_next_update(name, when)
        except (IngestionError, SQLAlchemyError) as exc:
            logger.error("Failed to reschedule package package=%s: %s", name, exc)

    @staticmethod
    def _parse_args(args: Any) -> StatsArgs:
        if args is None:
            return StatsArgs()
        try:
            return StatsArgs.model_validate(args)
        except ValidationError as exc:
            raise DecodeError(f"Invalid {UPDATE_PACKAGE_STATS} arguments: {exc}") from exc


def build_handlers(
    client: RegistryClient,
    writer: SnapshotWriter,
    *,
    listing_skip: int = 0,
    listing_limit: int = 10,
    stats_batch_size: int = 50,
    stats_interval: timedelta = timedelta(hours=24),
    stats_retry: timedelta = timedelta(hours=1),
) -> Dict[str, Callable[[Any], Any]]:
    return {
        UPDATE_PACKAGE_LIST: UpdatePackageListHandler(client, writer, skip=listing_skip, limit=listing_limit),
        UPDATE_PACKAGE_STATS: UpdatePackageStatsHandler(
            client, writer, batch_size=stats_batch_size, interval=stats_interval, retry=stats_retry
        ),
    }
