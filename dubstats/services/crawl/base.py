from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Union


Document = Union[str, bytes]


@dataclass(frozen=True)
class Listing:
    """A package seen on a registry index page."""

    name: str
    registered: datetime  # UTC

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "registered": self.registered.isoformat()}


class Spider:
    """Minimal spider contract.

    Subclasses implement parse_html() to turn one fetched document into records.
    Fetching stays with the registry client so parsing can be exercised on
    stored pages.
    """

    name: str = "base"

    def parse_html(self, html: Document) -> List[Any]:
        raise NotImplementedError
