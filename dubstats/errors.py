from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for failures raised by the ingestion pipeline."""


class TransportError(IngestionError):
    """Upstream (registry, queue, parameter store) could not be reached or refused the call."""

    def __init__(self, message: str, *, url: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DecodeError(IngestionError):
    """A message or upstream payload was reachable but malformed."""


class ParseError(IngestionError):
    """A single listing row could not be interpreted."""


class NotFoundError(IngestionError):
    """A write targeted a package or version that is not recorded."""
