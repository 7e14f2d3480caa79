from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from selectolax.parser import HTMLParser

from dubstats.errors import DecodeError, ParseError

from ..base import Document, Listing, Spider

logger = logging.getLogger(__name__)

# e.g. "2021-Oct-10 14:50:58Z"
REGISTERED_FORMAT = "%Y-%b-%d %H:%M:%SZ"


class DubListingSpider(Spider):
    """Parser for the code.dlang.org package index table.

    A row counts as a listing only when it has a link cell (the package name)
    and a ``span.dull`` whose ``title`` holds the registration time. Other rows
    (headers, layout tables, partial markup) are skipped without complaint;
    rows with an unreadable timestamp are logged and skipped.
    """

    name = "dub_listing"

    def __init__(
        self,
        *,
        row_sel: str = "tr",
        name_sel: str = "td a",
        registered_sel: str = "td span.dull",
    ) -> None:
        self.row_sel = row_sel
        self.name_sel = name_sel
        self.registered_sel = registered_sel

    def parse_html(self, html: Document) -> List[Listing]:
        if isinstance(html, bytes):
            try:
                html = html.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"Listing page is not valid UTF-8: {exc}") from exc
        if not html.strip():
            return []
        doc = HTMLParser(html)

        listings: List[Listing] = []
        for row in doc.css(self.row_sel):
            name_node = row.css_first(self.name_sel)
            span = row.css_first(self.registered_sel)
            if name_node is None or span is None:
                continue
            pkg_name = name_node.text(strip=True)
            if not pkg_name:
                continue
            try:
                registered = self._parse_registered(span.attributes.get("title"))
            except ParseError as exc:
                logger.warning("Skipping listing row package=%s: %s", pkg_name, exc)
                continue
            listings.append(Listing(name=pkg_name, registered=registered))
        return listings

    @staticmethod
    def _parse_registered(title: Optional[str]) -> datetime:
        raw = (title or "").strip()
        if not raw:
            raise ParseError("registered timestamp is missing")
        try:
            parsed = datetime.strptime(raw, REGISTERED_FORMAT)
        except ValueError as exc:
            raise ParseError(f"bad registered timestamp {raw!r}") from exc
        return parsed.replace(tzinfo=timezone.utc)


def parse_listing(document: Document) -> List[Listing]:
    return DubListingSpider().parse_html(document)
