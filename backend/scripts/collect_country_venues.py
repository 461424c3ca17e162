"""Pull every coffee venue in a country from Overpass into the venue store.

Usage:
    python -m scripts.collect_country_venues --country NZ --force

This is a data-collection tool, not part of the search flow. It issues one
large query against the public Overpass service, so it only runs with
--force. Use --dry-run to fetch and count without writing.
"""

from __future__ import annotations

import argparse
import logging
import sys

from db import SessionLocal, init_db
from repositories import VenuesRepository
from services.overpass_client import OverpassClient, OverpassError

LOG = logging.getLogger("collect_country_venues")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--country", default="NZ", help="ISO 3166-1 alpha-2 country code")
    parser.add_argument("--force", action="store_true", help="actually run the country-wide query")
    parser.add_argument("--dry-run", action="store_true", help="fetch but do not write to the store")
    return parser.parse_args(argv)


def main(argv=None, client: OverpassClient = None, session_factory=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    client = client or OverpassClient()

    try:
        venues = client.fetch_country(args.country, force=args.force)
    except OverpassError as exc:
        LOG.error("%s", exc)
        return 1

    print(f"Fetched {len(venues)} coffee venues for {args.country.upper()}")
    if args.dry_run or not venues:
        return 0

    if session_factory is None:
        init_db()
        session_factory = SessionLocal
    repo = VenuesRepository()
    with session_factory() as session:
        result = repo.upsert_venues(session, venues)
    if not result.success:
        LOG.error("Failed to save venues: %s", result.error)
        return 1
    print(f"Saved {result.saved_count} venues")
    return 0


if __name__ == "__main__":
    sys.exit(main())
