from __future__ import annotations

import argparse
import logging
from typing import Optional

from dubstats.config import Settings
from dubstats.context import WorkerContext
from dubstats.errors import TransportError
from dubstats.logging_config import configure_logging

logger = logging.getLogger(__name__)


def run_worker(settings: Settings, *, max_polls: Optional[int] = None) -> int:
    ctx = WorkerContext.build(settings)
    try:
        dispatched = ctx.ingestion_loop().run(max_polls=max_polls)
    finally:
        ctx.close()
    logger.info("Worker stopped dispatched=%d", dispatched)
    return 0


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Package statistics ingestion worker")
    sub = parser.add_subparsers(dest="cmd")

    run = sub.add_parser("run", help="Consume commands from the work queue (default)")
    run.add_argument("--max-polls", type=int, default=None, help="Stop after this many receive calls")
    run.add_argument("--env-file", default=None, help="Path to a .env file (defaults to the project root)")

    args = parser.parse_args(argv)
    max_polls = getattr(args, "max_polls", None)
    env_file = getattr(args, "env_file", None)

    try:
        settings = Settings.from_env(env_file=env_file)
    except RuntimeError as exc:
        configure_logging("prod")
        logger.error("Invalid configuration: %s", exc)
        return 2
    configure_logging(settings.mode)

    try:
        return run_worker(settings, max_polls=max_polls)
    except TransportError as exc:
        logger.error("Fatal transport error, exiting: %s", exc)
        return 1
    except RuntimeError as exc:
        logger.error("Startup failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
