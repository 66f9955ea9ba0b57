"""Batch ingestion of parsed listing records."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from monaco_rentals.db.storage import ListingStorage
from monaco_rentals.logging import get_logger, record_context
from monaco_rentals.matching.upsert import ListingUpserter
from monaco_rentals.models import ParsedListing, UpsertResult

logger = get_logger(__name__)


@dataclass
class IngestSummary:
    """Counts for one ingestion run."""

    processed: int = 0
    new_listings: int = 0
    errors: int = 0
    notify_candidates: list[UpsertResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "new_listings": self.new_listings,
            "errors": self.errors,
            "notify_candidates": len(self.notify_candidates),
        }


def should_notify(result: UpsertResult, min_score: int) -> bool:
    """Whether a newly created listing is worth a notification.

    Price on request (0) is never notified.
    """
    return (
        result.created_new_listing
        and result.score is not None
        and result.score > min_score
        and result.price_monthly_cents > 0
    )


def load_records(path: Path) -> tuple[list[ParsedListing], int]:
    """Load parsed records from a JSON Lines file.

    Args:
        path: File with one ParsedListing JSON object per line.

    Returns:
        Tuple of (valid records, number of invalid lines skipped).
    """
    records: list[ParsedListing] = []
    invalid = 0
    with path.open(encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            if not line.strip():
                continue
            try:
                records.append(ParsedListing.model_validate_json(line))
            except ValidationError as e:
                invalid += 1
                logger.warning(
                    "invalid_record_skipped",
                    path=str(path),
                    line=line_no,
                    errors=e.error_count(),
                )
    return records, invalid


async def ingest_records(
    storage: ListingStorage,
    records: Sequence[ParsedListing],
    *,
    notify_min_score: int = 50,
    delay_seconds: float = 0.0,
    upserter: ListingUpserter | None = None,
) -> IngestSummary:
    """Upsert records one at a time; a failing record never aborts the batch.

    Args:
        storage: Initialized listing storage.
        records: Parsed records, processed in order.
        notify_min_score: New listings scoring above this are notification candidates.
        delay_seconds: Pause between records.
        upserter: Engine to use (defaults to one bound to ``storage``).

    Returns:
        IngestSummary with counts and notification candidates.
    """
    engine = upserter or ListingUpserter(storage)
    summary = IngestSummary()

    for index, record in enumerate(records, start=1):
        summary.processed += 1
        with record_context(record):
            try:
                result = await engine.upsert(record)
            except Exception:
                summary.errors += 1
                logger.error("record_processing_failed", url=record.url, exc_info=True)
            else:
                if result.created_new_listing:
                    summary.new_listings += 1
                    if should_notify(result, notify_min_score):
                        summary.notify_candidates.append(result)
                logger.debug(
                    "record_processed",
                    position=index,
                    total=len(records),
                    listing_id=result.listing_id,
                    created=result.created_new_listing,
                    score=result.score,
                )

        if delay_seconds and index < len(records):
            await asyncio.sleep(delay_seconds)

    logger.info("ingest_complete", **summary.to_dict())
    return summary
