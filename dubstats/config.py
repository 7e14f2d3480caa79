"""Worker configuration.

Settings come from the process environment, falling back to a `.env` file at
the project root for keys that are not already set. Database credentials are
resolved once at startup from the AWS parameter store (or from DB_HOST /
DB_USER / DB_PASSWORD for local runs) and never re-read mid-run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from dubstats.errors import TransportError


DEFAULT_REGISTRY_URL = "https://code.dlang.org"
DEFAULT_REGION = "eu-west-2"


def _load_env_from_file(path: Optional[str] = None) -> None:
    """Load KEY=VALUE lines from a .env file without overriding existing variables."""
    if path is None:
        root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
        path = os.path.join(root_dir, ".env")
    if not os.path.isfile(path):
        return
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith("#") or "=" not in s:
                continue
            key, val = s.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and not os.environ.get(key):
                os.environ[key] = val


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    mode: str = "prod"
    aws_region: str = DEFAULT_REGION
    queue_url: Optional[str] = None
    dead_letter_queue_url: Optional[str] = None
    max_receive_count: int = 5
    wait_time_seconds: int = 5
    max_messages: int = 10
    registry_url: str = DEFAULT_REGISTRY_URL
    http_timeout: float = 15.0
    db_name: str = "dubstats"
    db_sslmode: str = "require"
    db_connect_timeout: int = 10
    listing_skip: int = 0
    listing_limit: int = 10
    stats_batch_size: int = 50
    stats_interval_hours: float = 24.0
    stats_retry_minutes: float = 60.0
    ssm_db_url_param: str = "db_url"
    ssm_db_user_param: str = "db_lambda_user"
    ssm_db_pass_param: str = "db_lambda_pass"

    @classmethod
    def from_env(cls, *, env_file: Optional[str] = None) -> "Settings":
        _load_env_from_file(env_file)
        mode = (os.getenv("MODE") or "prod").strip().lower()
        if mode not in ("prod", "dev"):
            raise RuntimeError(f"MODE must be 'prod' or 'dev', got {mode!r}")
        return cls(
            mode=mode,
            aws_region=os.getenv("AWS_REGION") or DEFAULT_REGION,
            queue_url=os.getenv("QUEUE_URL") or None,
            dead_letter_queue_url=os.getenv("DEAD_LETTER_QUEUE_URL") or None,
            max_receive_count=_env_int("MAX_RECEIVE_COUNT", 5),
            wait_time_seconds=_env_int("QUEUE_WAIT_SECONDS", 5),
            max_messages=_env_int("QUEUE_MAX_MESSAGES", 10),
            registry_url=os.getenv("REGISTRY_URL") or DEFAULT_REGISTRY_URL,
            http_timeout=_env_float("HTTP_TIMEOUT", 15.0),
            db_name=os.getenv("DB_DB") or "dubstats",
            db_sslmode=os.getenv("DB_SSL") or "require",
            db_connect_timeout=_env_int("DB_CONNECT_TIMEOUT", 10),
            listing_skip=_env_int("LISTING_SKIP", 0),
            listing_limit=_env_int("LISTING_LIMIT", 10),
            stats_batch_size=_env_int("STATS_BATCH_SIZE", 50),
            stats_interval_hours=_env_float("STATS_INTERVAL_HOURS", 24.0),
            stats_retry_minutes=_env_float("STATS_RETRY_MINUTES", 60.0),
            ssm_db_url_param=os.getenv("SSM_DB_URL_PARAM") or "db_url",
            ssm_db_user_param=os.getenv("SSM_DB_USER_PARAM") or "db_lambda_user",
            ssm_db_pass_param=os.getenv("SSM_DB_PASS_PARAM") or "db_lambda_pass",
        )

    def require_queue_url(self) -> str:
        if not self.queue_url:
            raise RuntimeError(
                "QUEUE_URL is not set.\n"
                "Define it in your environment or in a .env file at the project root, e.g.\n"
                "QUEUE_URL=https://sqs.eu-west-2.amazonaws.com/<account>/<queue>"
            )
        return self.queue_url


@dataclass(frozen=True)
class DatabaseCredentials:
    host: str
    user: str
    password: str

    @property
    def hostname(self) -> str:
        return self.host.split(":", 1)[0]

    @property
    def port(self) -> int:
        if ":" not in self.host:
            return 5432
        port = self.host.split(":", 1)[1]
        try:
            return int(port)
        except ValueError as exc:
            raise RuntimeError(f"Database host has an invalid port: {self.host!r}") from exc


def _get_parameter(ssm_client: Any, name: str, *, decrypt: bool = False) -> str:
    try:
        resp = ssm_client.get_parameter(Name=name, WithDecryption=decrypt)
    except (BotoCoreError, ClientError) as exc:
        raise TransportError(f"Could not read parameter {name!r}: {exc}") from exc
    return resp["Parameter"]["Value"]


def load_credentials(settings: Settings, ssm_client: Any = None) -> DatabaseCredentials:
    """Resolve the database credential bundle.

    DB_HOST, DB_USER and DB_PASSWORD, when all set, take precedence so the
    worker can run against a local database. Otherwise the three values are read
    from the parameter store through ``ssm_client``.
    """
    host, user, pwd = os.getenv("DB_HOST"), os.getenv("DB_USER"), os.getenv("DB_PASSWORD")
    if host and user and pwd:
        return DatabaseCredentials(host=host, user=user, password=pwd)
    if ssm_client is None:
        raise RuntimeError(
            "No database credentials available: set DB_HOST, DB_USER and DB_PASSWORD "
            "or provide access to the parameter store."
        )
    return DatabaseCredentials(
        host=_get_parameter(ssm_client, settings.ssm_db_url_param),
        user=_get_parameter(ssm_client, settings.ssm_db_user_param),
        password=_get_parameter(ssm_client, settings.ssm_db_pass_param, decrypt=True),
    )
