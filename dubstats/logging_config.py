from __future__ import annotations

import logging
import sys


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(mode: str = "prod") -> None:
    """Install a single stream handler; `dev` logs at DEBUG, everything else at INFO."""
    level = logging.DEBUG if mode == "dev" else logging.INFO
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if mode == "dev" else logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
