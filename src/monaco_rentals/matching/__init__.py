"""Identity resolution: match incoming records to canonical listings and merge them."""

from monaco_rentals.matching.matcher import (
    ListingMatcher,
    MatchDecision,
    MatchStrategy,
    run_cascade,
)
from monaco_rentals.matching.upsert import ListingUpserter, merge_listing

__all__ = [
    "ListingMatcher",
    "ListingUpserter",
    "MatchDecision",
    "MatchStrategy",
    "merge_listing",
    "run_cascade",
]
