from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, TextIO

from dubstats.config import DEFAULT_REGISTRY_URL
from dubstats.errors import IngestionError
from dubstats.services.registry_client import RegistryClient, decode_metrics
from .spiders.dub_listing_spider import parse_listing


def run_listing(
    *,
    file: Optional[str] = None,
    skip: int = 0,
    limit: int = 10,
    registry_url: str = DEFAULT_REGISTRY_URL,
    out: Optional[TextIO] = None,
) -> int:
    if file:
        with open(file, "r", encoding="utf-8") as f:
            html = f.read()
    else:
        with RegistryClient(registry_url) as client:
            html = client.fetch_listing_page(skip, limit)
    listings = parse_listing(html)
    out = out or sys.stdout
    for listing in listings:
        out.write(json.dumps(listing.to_dict(), ensure_ascii=False) + "\n")
    return len(listings)


def run_stats(
    package: str,
    *,
    stats_file: Optional[str] = None,
    info_file: Optional[str] = None,
    registry_url: str = DEFAULT_REGISTRY_URL,
    out: Optional[TextIO] = None,
) -> None:
    if stats_file and info_file:
        with open(stats_file, "r", encoding="utf-8") as f:
            stats_text = f.read()
        with open(info_file, "r", encoding="utf-8") as f:
            info_text = f.read()
        stats, info = decode_metrics(stats_text, info_text)
    else:
        with RegistryClient(registry_url) as client:
            version = client.fetch_latest_version(package)
            stats, info = client.fetch_metrics(package, version)
    out = out or sys.stdout
    payload = {
        "package": package,
        "stats": stats.model_dump(),
        "info": info.model_dump(exclude={"readme"}),
    }
    out.write(json.dumps(payload, ensure_ascii=False) + "\n")


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Check registry parsing by hand, offline or live")
    parser.add_argument("--registry-url", default=DEFAULT_REGISTRY_URL)
    sub = parser.add_subparsers(dest="cmd", required=True)

    listing = sub.add_parser("listing", help="Parse a package index page into listings (JSONL)")
    listing.add_argument("--file", help="Local HTML file; fetched live when omitted")
    listing.add_argument("--skip", type=int, default=0)
    listing.add_argument("--limit", type=int, default=10)

    stats = sub.add_parser("stats", help="Decode a package's stats and version info")
    stats.add_argument("package", help="Registry package name, e.g. jioc")
    stats.add_argument("--stats-file", help="Local stats JSON (requires --info-file)")
    stats.add_argument("--info-file", help="Local version info JSON (requires --stats-file)")

    args = parser.parse_args(argv)

    try:
        if args.cmd == "listing":
            run_listing(file=args.file, skip=args.skip, limit=args.limit, registry_url=args.registry_url)
            return 0
        if args.cmd == "stats":
            if bool(args.stats_file) != bool(args.info_file):
                parser.error("--stats-file and --info-file must be given together")
            run_stats(
                args.package,
                stats_file=args.stats_file,
                info_file=args.info_file,
                registry_url=args.registry_url,
            )
            return 0
    except IngestionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    parser.error("unknown command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
