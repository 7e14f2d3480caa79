"""Thin client for the DUB registry.

Endpoints used:
- GET /?sort=registered&category=&skip=N&limit=M   HTML listing page, newest first
- GET /api/packages/<name>/latest                  bare JSON string
- GET /api/packages/<name>/<version>/info          version info JSON
- GET /api/packages/<name>/stats                   download/repo counters JSON

Every method performs blocking requests with no retry; callers decide what a
failure means. Unreachable hosts and non-2xx answers raise TransportError,
payloads that cannot be decoded raise DecodeError.
"""

from __future__ import annotations

import json
import logging
import urllib.parse
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError

from dubstats.config import DEFAULT_REGISTRY_URL
from dubstats.errors import DecodeError, TransportError
from dubstats.models.registry import PackageInfo, PackageStats

logger = logging.getLogger(__name__)

USER_AGENT = "dubstats-worker/0.1"


def _segment(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def _load_json(payload: Any) -> Any:
    if isinstance(payload, (bytes, str)):
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON payload: {exc}") from exc
    return payload


def decode_metrics(stats_payload: Any, info_payload: Any) -> Tuple[PackageStats, PackageInfo]:
    """Decode raw stats and info payloads (JSON text, bytes or already-parsed dicts)."""
    try:
        stats = PackageStats.model_validate(_load_json(stats_payload))
        info = PackageInfo.model_validate(_load_json(info_payload))
    except ValidationError as exc:
        raise DecodeError(f"Unexpected registry payload: {exc}") from exc
    return stats, info


class RegistryClient:
    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        timeout: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=float(timeout),
            headers=headers or {"User-Agent": USER_AGENT},
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RegistryClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Public API ---
    def fetch_listing_page(self, skip: int, limit: int) -> str:
        params = {"sort": "registered", "category": "", "skip": int(skip), "limit": int(limit)}
        resp = self._get("/", params=params)
        return resp.text

    def fetch_latest_version(self, package_name: str) -> str:
        resp = self._get(f"/api/packages/{_segment(package_name)}/latest")
        version = self._json(resp)
        if not isinstance(version, str) or not version:
            raise DecodeError(f"Latest version of {package_name!r} is not a version string: {version!r}")
        return version

    def fetch_metrics(self, package_name: str, version: str) -> Tuple[PackageStats, PackageInfo]:
        name = _segment(package_name)
        info = self._json(self._get(f"/api/packages/{name}/{_segment(version)}/info"))
        stats = self._json(self._get(f"/api/packages/{name}/stats"))
        return decode_metrics(stats, info)

    # --- Internals ---
    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}", url=url) from exc
        if not resp.is_success:
            raise TransportError(
                f"GET {url} returned HTTP {resp.status_code}", url=url, status_code=resp.status_code
            )
        logger.debug("Fetched url=%s status=%s bytes=%d", url, resp.status_code, len(resp.content))
        return resp

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(f"Invalid JSON from {resp.request.url}: {exc}") from exc
