from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import boto3
from sqlalchemy.engine import Engine

from dubstats.config import Settings, load_credentials
from dubstats.db.connector import create_db_engine
from dubstats.services.dispatcher import CommandDispatcher
from dubstats.services.handlers import build_handlers
from dubstats.services.ingestion_loop import IngestionLoop
from dubstats.services.queue import CommandQueue
from dubstats.services.registry_client import RegistryClient
from dubstats.services.snapshot_writer import SnapshotWriter

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    """Process-wide resources, built once at startup and passed to every component."""

    settings: Settings
    engine: Engine
    registry: RegistryClient
    queue: CommandQueue

    @classmethod
    def build(cls, settings: Settings, *, session: Optional[Any] = None) -> "WorkerContext":
        session = session or boto3.Session(region_name=settings.aws_region)
        queue_url = settings.require_queue_url()

        credentials = load_credentials(settings, session.client("ssm"))
        logger.info("Resolved database credentials host=%s", credentials.hostname)
        engine = create_db_engine(credentials, settings)

        registry = RegistryClient(settings.registry_url, timeout=settings.http_timeout)
        queue = CommandQueue(
            session.client("sqs"),
            queue_url,
            wait_time_seconds=settings.wait_time_seconds,
            max_messages=settings.max_messages,
            dead_letter_queue_url=settings.dead_letter_queue_url,
        )
        return cls(settings=settings, engine=engine, registry=registry, queue=queue)

    def writer(self) -> SnapshotWriter:
        return SnapshotWriter(self.engine)

    def dispatcher(self) -> CommandDispatcher:
        handlers = build_handlers(
            self.registry,
            self.writer(),
            listing_skip=self.settings.listing_skip,
            listing_limit=self.settings.listing_limit,
            stats_batch_size=self.settings.stats_batch_size,
            stats_interval=timedelta(hours=self.settings.stats_interval_hours),
            stats_retry=timedelta(minutes=self.settings.stats_retry_minutes),
        )
        return CommandDispatcher(self.queue, handlers, max_receive_count=self.settings.max_receive_count)

    def ingestion_loop(self) -> IngestionLoop:
        return IngestionLoop(self.queue, self.dispatcher())

    def close(self) -> None:
        self.registry.close()
        self.engine.dispose()
