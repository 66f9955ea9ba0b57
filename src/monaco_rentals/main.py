"""Command line entry point for monaco-rentals."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from monaco_rentals.config import Settings
from monaco_rentals.db import ListingStorage
from monaco_rentals.logging import configure_logging, get_logger
from monaco_rentals.maintenance import (
    DuplicateCandidate,
    backfill_scores,
    find_duplicate_candidates,
    seed_source_websites,
)
from monaco_rentals.pipeline import ingest_records, load_records

logger = get_logger(__name__)


def _format_price(cents: int) -> str:
    if cents == 0:
        return "price on request"
    return f"€{cents / 100:,.0f}/month"


async def run_seed_sources(settings: Settings) -> None:
    storage = ListingStorage(settings.database_path)
    try:
        await storage.initialize()
        seeded = await seed_source_websites(storage)
        for website in seeded:
            print(f"{website.code}: {website.name} ({website.base_url})")
    finally:
        await storage.close()


async def run_ingest(settings: Settings, path: Path) -> int:
    """Ingest a JSON Lines file of parsed records.

    Returns:
        Process exit code: 0 when every line was ingested, 1 otherwise.
    """
    records, invalid = load_records(path)
    storage = ListingStorage(settings.database_path)
    try:
        await storage.initialize()
        summary = await ingest_records(
            storage,
            records,
            notify_min_score=settings.notify_min_score,
            delay_seconds=settings.record_delay_seconds,
        )
    finally:
        await storage.close()

    print(f"\n{'=' * 60}")
    print(
        f"Processed {summary.processed} records: {summary.new_listings} new, "
        f"{summary.errors} errors, {invalid} invalid lines"
    )
    print(f"{'=' * 60}")
    if summary.notify_candidates:
        print(f"\nWorth a look (score > {settings.notify_min_score}):")
        for result in summary.notify_candidates:
            print(
                f"  listing {result.listing_id}: score {result.score}, "
                f"{_format_price(result.price_monthly_cents)}"
            )
    return 0 if summary.errors == 0 and invalid == 0 else 1


async def run_backfill_scores(settings: Settings) -> int:
    storage = ListingStorage(settings.database_path)
    try:
        await storage.initialize()
        summary = await backfill_scores(storage)
    finally:
        await storage.close()

    print(f"Rescored {summary.updated}/{summary.total} listings ({summary.errors} errors)")
    for score, count in sorted(summary.distribution.items(), reverse=True):
        print(f"  {score:>3}: {count}")
    return 0 if summary.errors == 0 else 1


def _print_candidate(
    candidate: DuplicateCandidate, source_keys: dict[int, list[tuple[str, str]]]
) -> None:
    print(f"[{candidate.reason.value}] {candidate.detail}")
    for listing in (candidate.first, candidate.second):
        sources = ", ".join(f"{code}:{sid}" for code, sid in source_keys.get(listing.id, []))
        print(
            f"  #{listing.id} {listing.title} | {_format_price(listing.price_monthly_cents)} | "
            f"{listing.total_area_sqm or '?'} sqm | ref {listing.reference_code_normalized or '-'}"
            f" | {sources or 'no sources'}"
        )
    area = f"{candidate.area_diff_sqm:g} sqm" if candidate.area_diff_sqm is not None else "n/a"
    print(f"  diff: {candidate.price_diff_cents / 100:,.0f} EUR, {area}")
    print()


async def run_find_duplicates(settings: Settings) -> None:
    storage = ListingStorage(settings.database_path)
    try:
        await storage.initialize()
        listings = await storage.get_all_listings()
        source_keys = await storage.get_source_keys_by_listing()
    finally:
        await storage.close()

    candidates = find_duplicate_candidates(listings)
    if not candidates:
        print("No duplicate candidates found.")
        return
    print(f"{len(candidates)} duplicate candidates:\n")
    for candidate in candidates:
        _print_candidate(candidate, source_keys)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Monaco Rentals - cross-source listing identity resolution"
    )
    parser.add_argument(
        "--seed-sources",
        action="store_true",
        help="Create or update the known source websites",
    )
    parser.add_argument(
        "--ingest",
        type=Path,
        metavar="PATH",
        default=None,
        help="Ingest parsed listings from a JSON Lines file",
    )
    parser.add_argument(
        "--backfill-scores",
        action="store_true",
        help="Recompute the score of every rental listing",
    )
    parser.add_argument(
        "--find-duplicates",
        action="store_true",
        help="Report listings that probably describe the same unit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug-level logging for troubleshooting",
    )
    args = parser.parse_args()

    try:
        settings = Settings()
    except Exception as e:
        configure_logging(level=logging.DEBUG if args.debug else logging.INFO)
        logger.error("failed_to_load_settings", error=str(e))
        print(f"Error: Failed to load settings. {e}")
        sys.exit(1)

    configure_logging(
        json_output=settings.log_json,
        level=logging.DEBUG if args.debug else logging.INFO,
    )

    if not (args.seed_sources or args.ingest or args.backfill_scores or args.find_duplicates):
        parser.print_help()
        sys.exit(2)

    logger.info("starting_monaco_rentals", database=settings.database_path)

    exit_code = 0
    if args.seed_sources:
        asyncio.run(run_seed_sources(settings))
    if args.ingest:
        if not args.ingest.is_file():
            print(f"Error: {args.ingest} is not a file")
            sys.exit(1)
        exit_code |= asyncio.run(run_ingest(settings, args.ingest))
    if args.backfill_scores:
        exit_code |= asyncio.run(run_backfill_scores(settings))
    if args.find_duplicates:
        asyncio.run(run_find_duplicates(settings))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
