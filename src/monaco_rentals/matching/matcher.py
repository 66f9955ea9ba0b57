"""Resolve an incoming record to an existing canonical listing.

Strategies run in order until one resolves a listing:

1. Source identity: (website, source listing id) already has a provenance record.
2. Reference code: exact normalized code, else a fuzzy match on its base prefix.
3. Fingerprint: exact content fingerprint.
4. Structure: same building, same rooms, similar total area.

Candidates found by 2-4 that are not already linked to this source must pass
tolerance checks. A rejected reference or fingerprint candidate marks that key
unusable, so a newly created listing never collides with the other unit.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from monaco_rentals.db.storage import ListingStorage
from monaco_rentals.logging import get_logger
from monaco_rentals.matching.tolerance import AREA_TOLERANCE_SQM, compare
from monaco_rentals.models import Listing, ParsedListing, SourceWebsite
from monaco_rentals.utils.normalize import (
    build_fingerprint,
    disambiguated_fingerprint,
    normalize_reference,
    reference_base_prefix,
)

logger = get_logger(__name__)


class MatchStrategy(StrEnum):
    """How an incoming record was resolved to a canonical listing."""

    SOURCE_IDENTITY = "source_identity"
    REFERENCE_CODE = "reference_code"
    FINGERPRINT = "fingerprint"
    STRUCTURAL = "structural"
    INSERT_CONFLICT = "insert_conflict"
    NONE = "none"


@dataclass(frozen=True)
class MatchContext:
    """Everything a strategy needs about the incoming record."""

    record: ParsedListing
    source_website_id: int
    normalized_reference: str | None
    fingerprint: str


@dataclass(frozen=True)
class StrategyOutcome:
    """Result of one strategy: a resolved listing and/or key verdicts."""

    listing: Listing | None = None
    reference_code_usable: bool = True
    fingerprint_usable: bool = True


NO_MATCH: Final = StrategyOutcome()

Strategy = Callable[[MatchContext], Awaitable[StrategyOutcome]]


@dataclass(frozen=True)
class MatchDecision:
    """Immutable outcome of the matching cascade for one record."""

    listing: Listing | None
    strategy: MatchStrategy
    normalized_reference: str | None
    fingerprint: str
    source_website_code: str
    source_listing_id: str
    reference_code_usable: bool = True
    fingerprint_usable: bool = True

    @property
    def matched(self) -> bool:
        return self.listing is not None

    @property
    def fallback_fingerprint(self) -> str:
        """Fingerprint disambiguated with the source identity."""
        return disambiguated_fingerprint(
            self.fingerprint, self.source_website_code, self.source_listing_id
        )

    @property
    def fingerprint_to_persist(self) -> str:
        """Fingerprint safe to store on a newly created listing."""
        return self.fingerprint if self.fingerprint_usable else self.fallback_fingerprint

    @property
    def reference_to_persist(self) -> str | None:
        """Normalized reference safe to store on a newly created listing."""
        return self.normalized_reference if self.reference_code_usable else None


async def run_cascade(
    steps: Sequence[tuple[MatchStrategy, Strategy]],
    context: MatchContext,
) -> MatchDecision:
    """Run strategies in order, stopping at the first that resolves a listing.

    Key verdicts from every strategy that ran are combined into the decision.
    """
    reference_usable = True
    fingerprint_usable = True

    for name, step in steps:
        outcome = await step(context)
        reference_usable = reference_usable and outcome.reference_code_usable
        fingerprint_usable = fingerprint_usable and outcome.fingerprint_usable
        if outcome.listing is not None:
            return MatchDecision(
                listing=outcome.listing,
                strategy=name,
                normalized_reference=context.normalized_reference,
                fingerprint=context.fingerprint,
                source_website_code=context.record.source_website_code,
                source_listing_id=context.record.source_listing_id,
                reference_code_usable=reference_usable,
                fingerprint_usable=fingerprint_usable,
            )

    return MatchDecision(
        listing=None,
        strategy=MatchStrategy.NONE,
        normalized_reference=context.normalized_reference,
        fingerprint=context.fingerprint,
        source_website_code=context.record.source_website_code,
        source_listing_id=context.record.source_listing_id,
        reference_code_usable=reference_usable,
        fingerprint_usable=fingerprint_usable,
    )


def build_context(record: ParsedListing, source_website: SourceWebsite) -> MatchContext:
    """Compute the comparison keys for a record."""
    assert source_website.id is not None
    return MatchContext(
        record=record,
        source_website_id=source_website.id,
        normalized_reference=normalize_reference(record.reference_raw),
        fingerprint=build_fingerprint(
            city=record.city,
            price_monthly_cents=record.price_monthly_cents,
            district=record.district,
            building_name=record.building_name,
            living_area_sqm=record.living_area_sqm,
            terrace_area_sqm=record.terrace_area_sqm,
            bedrooms=record.bedrooms,
            rooms=record.rooms,
        ),
    )


class ListingMatcher:
    """Run the matching cascade against the canonical store."""

    def __init__(self, storage: ListingStorage) -> None:
        self.storage = storage

    @property
    def steps(self) -> tuple[tuple[MatchStrategy, Strategy], ...]:
        return (
            (MatchStrategy.SOURCE_IDENTITY, self.match_by_source_identity),
            (MatchStrategy.REFERENCE_CODE, self.match_by_reference_code),
            (MatchStrategy.FINGERPRINT, self.match_by_fingerprint),
            (MatchStrategy.STRUCTURAL, self.match_by_structure),
        )

    async def resolve(self, record: ParsedListing, source_website: SourceWebsite) -> MatchDecision:
        """Resolve a record to an existing listing, or decide it is new.

        Args:
            record: Incoming parsed record.
            source_website: The record's (seeded) source website.

        Returns:
            MatchDecision with the matched listing (or None) and the keys that
            are safe to persist on a new listing.
        """
        context = build_context(record, source_website)
        decision = await run_cascade(self.steps, context)

        logger.debug(
            "match_resolved",
            source=record.source_website_code,
            source_listing_id=record.source_listing_id,
            strategy=decision.strategy.value,
            listing_id=decision.listing.id if decision.listing else None,
            reference_code_usable=decision.reference_code_usable,
            fingerprint_usable=decision.fingerprint_usable,
        )
        return decision

    async def _is_linked(self, listing: Listing, context: MatchContext) -> bool:
        return await self.storage.is_linked(
            listing.id, context.source_website_id, context.record.source_listing_id
        )

    async def match_by_source_identity(self, context: MatchContext) -> StrategyOutcome:
        """Exact lookup of the provenance record for (website, source listing id)."""
        source = await self.storage.get_listing_source(
            context.source_website_id, context.record.source_listing_id
        )
        if source is None:
            return NO_MATCH
        listing = await self.storage.get_listing(source.listing_id)
        if listing is None:
            return NO_MATCH
        return StrategyOutcome(listing=listing)

    async def match_by_reference_code(self, context: MatchContext) -> StrategyOutcome:
        """Exact or fuzzy normalized reference code, verified for cross-source candidates."""
        code = context.normalized_reference
        if not code:
            return NO_MATCH

        candidate = await self.storage.get_listing_by_reference(code)
        if candidate is None:
            candidate = await self._fuzzy_reference_candidate(code, context.record)
        if candidate is None:
            return NO_MATCH

        if await self._is_linked(candidate, context):
            return StrategyOutcome(listing=candidate)

        check = compare(candidate, context.record)
        if check.same_unit_by_reference:
            logger.info(
                "cross_source_reference_match",
                reference=code,
                matched_reference=candidate.reference_code_normalized,
                listing_id=candidate.id,
            )
            return StrategyOutcome(listing=candidate)

        logger.info(
            "reference_code_unusable",
            reference=code,
            candidate_id=candidate.id,
            checks=check.to_dict(),
        )
        return StrategyOutcome(reference_code_usable=False)

    async def _fuzzy_reference_candidate(
        self, code: str, record: ParsedListing
    ) -> Listing | None:
        """Find a listing whose code shares this code's base prefix.

        With several candidates the first (in insertion order) that passes
        price and area tolerance wins, not the closest one.
        """
        prefix = reference_base_prefix(code)
        if not prefix or prefix == code:
            return None

        exact_prefix = await self.storage.get_listing_by_reference(prefix)
        if exact_prefix is not None:
            return exact_prefix

        similar = await self.storage.find_listings_by_reference_prefix(prefix)
        if len(similar) == 1:
            return similar[0]
        for candidate in similar:
            if compare(candidate, record).same_unit_by_reference:
                return candidate
        return None

    async def match_by_fingerprint(self, context: MatchContext) -> StrategyOutcome:
        """Exact fingerprint, verified (including rooms) for cross-source candidates."""
        candidate = await self.storage.get_listing_by_fingerprint(context.fingerprint)
        if candidate is None:
            return NO_MATCH

        if await self._is_linked(candidate, context):
            return StrategyOutcome(listing=candidate)

        check = compare(candidate, context.record)
        if check.same_unit_by_fingerprint:
            logger.info(
                "cross_source_fingerprint_match",
                fingerprint=context.fingerprint,
                listing_id=candidate.id,
            )
            return StrategyOutcome(listing=candidate)

        logger.info(
            "fingerprint_unusable",
            fingerprint=context.fingerprint,
            candidate_id=candidate.id,
            checks=check.to_dict(),
        )
        return StrategyOutcome(fingerprint_usable=False)

    async def match_by_structure(self, context: MatchContext) -> StrategyOutcome:
        """Same building and rooms with similar total area, price and terrace."""
        record = context.record
        if not (record.building_name and record.total_area_sqm and record.rooms):
            return NO_MATCH

        candidates = await self.storage.find_structural_candidates(
            building_name=record.building_name,
            rooms=record.rooms,
            total_area_sqm=record.total_area_sqm,
            area_tolerance_sqm=AREA_TOLERANCE_SQM,
            district=record.district,
        )
        for candidate in candidates:
            if await self._is_linked(candidate, context):
                continue
            if compare(candidate, record).same_unit_by_structure:
                logger.info(
                    "cross_source_structural_match",
                    building=record.building_name,
                    total_area_sqm=record.total_area_sqm,
                    rooms=record.rooms,
                    listing_id=candidate.id,
                )
                return StrategyOutcome(listing=candidate)
        return NO_MATCH
