"""Maintenance operations: seeding, score backfill and duplicate reports."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

from monaco_rentals.db.storage import ListingStorage
from monaco_rentals.logging import get_logger
from monaco_rentals.matching.tolerance import AREA_TOLERANCE_SQM, PRICE_TOLERANCE_CENTS
from monaco_rentals.models import DEFAULT_SOURCE_WEBSITES, ContractType, Listing, SourceWebsite
from monaco_rentals.scoring import score_listing
from monaco_rentals.utils.normalize import reference_base_prefix

logger = get_logger(__name__)

# Shorter prefixes ("ACL", "WL_2P") are shared by unrelated listings of one agency.
MIN_REFERENCE_PREFIX_LENGTH: Final = 5

# Near-identical thresholds for listings without a shared reference
SAME_UNIT_PRICE_CENTS: Final = 100
SAME_UNIT_AREA_SQM: Final = 2.0


async def seed_source_websites(
    storage: ListingStorage,
    websites: Sequence[SourceWebsite] = DEFAULT_SOURCE_WEBSITES,
) -> list[SourceWebsite]:
    """Create or update the known source websites."""
    seeded = [await storage.upsert_source_website(website) for website in websites]
    logger.info("source_websites_seeded", codes=[w.code for w in seeded])
    return seeded


@dataclass
class BackfillSummary:
    total: int = 0
    updated: int = 0
    errors: int = 0
    distribution: Counter[int] = field(default_factory=Counter)


async def backfill_scores(
    storage: ListingStorage,
    *,
    contract_type: ContractType | None = ContractType.RENT,
) -> BackfillSummary:
    """Recompute and store the score of every listing.

    Args:
        storage: Initialized listing storage.
        contract_type: Only rescore listings of this type (None for all).

    Returns:
        BackfillSummary with counts and the resulting score distribution.
    """
    listings = await storage.get_all_listings(contract_type=contract_type)
    summary = BackfillSummary(total=len(listings))

    for listing in listings:
        try:
            score = score_listing(listing)
            await storage.update_score(listing.id, score)
        except Exception:
            summary.errors += 1
            logger.error("score_backfill_failed", listing_id=listing.id, exc_info=True)
            continue
        summary.updated += 1
        summary.distribution[score] += 1

    logger.info(
        "score_backfill_complete",
        total=summary.total,
        updated=summary.updated,
        errors=summary.errors,
    )
    return summary


class DuplicateReason(StrEnum):
    SAME_REFERENCE_CODE = "same_reference_code"
    SIMILAR_REFERENCE_CODE = "similar_reference_code"
    SAME_UNIT_ATTRIBUTES = "same_unit_attributes"


@dataclass(frozen=True)
class DuplicateCandidate:
    """Two listings that probably describe the same unit."""

    first: Listing
    second: Listing
    reason: DuplicateReason
    detail: str
    price_diff_cents: int
    area_diff_sqm: float | None


def _area_diff(first: Listing, second: Listing) -> float | None:
    if not first.total_area_sqm or not second.total_area_sqm:
        return None
    return abs(first.total_area_sqm - second.total_area_sqm)


def _duplicate_reason(first: Listing, second: Listing) -> tuple[DuplicateReason, str] | None:
    price_diff = abs(first.price_monthly_cents - second.price_monthly_cents)
    area_diff = _area_diff(first, second)
    ref1 = first.reference_code_normalized
    ref2 = second.reference_code_normalized

    if ref1 and ref2:
        if ref1 == ref2:
            return DuplicateReason.SAME_REFERENCE_CODE, ref1
        base1 = reference_base_prefix(ref1)
        if (
            base1 == reference_base_prefix(ref2)
            and len(base1) > MIN_REFERENCE_PREFIX_LENGTH
            and price_diff <= PRICE_TOLERANCE_CENTS
            and (area_diff is None or area_diff <= AREA_TOLERANCE_SQM)
        ):
            return DuplicateReason.SIMILAR_REFERENCE_CODE, base1

    if (
        price_diff <= SAME_UNIT_PRICE_CENTS
        and area_diff is not None
        and area_diff <= SAME_UNIT_AREA_SQM
        and first.rooms is not None
        and first.rooms == second.rooms
        and first.district is not None
        and first.district == second.district
        and first.building_name is not None
        and first.building_name == second.building_name
        and not (ref1 and ref2)
    ):
        return DuplicateReason.SAME_UNIT_ATTRIBUTES, first.building_name
    return None


def find_duplicate_candidates(listings: Sequence[Listing]) -> list[DuplicateCandidate]:
    """Pairwise scan for listings the upsert engine may have failed to merge.

    Listings are compared in price order; each pair is reported at most once,
    under the first reason that applies.
    """
    ordered = sorted(listings, key=lambda listing: (listing.price_monthly_cents, listing.id))
    candidates: list[DuplicateCandidate] = []

    for i, first in enumerate(ordered):
        for second in ordered[i + 1 :]:
            found = _duplicate_reason(first, second)
            if found is None:
                continue
            reason, detail = found
            candidates.append(
                DuplicateCandidate(
                    first=first,
                    second=second,
                    reason=reason,
                    detail=detail,
                    price_diff_cents=abs(first.price_monthly_cents - second.price_monthly_cents),
                    area_diff_sqm=_area_diff(first, second),
                )
            )

    logger.info("duplicate_scan_complete", listings=len(ordered), candidates=len(candidates))
    return candidates
