"""Upsert engine: resolve, create or merge, score, record provenance."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Final

from monaco_rentals.db.storage import FingerprintConflictError, ListingStorage
from monaco_rentals.logging import get_logger
from monaco_rentals.matching.matcher import ListingMatcher, MatchDecision, MatchStrategy
from monaco_rentals.matching.tolerance import compare
from monaco_rentals.models import (
    Condition,
    Listing,
    ListingAttributes,
    ParsedListing,
    UpsertResult,
)
from monaco_rentals.scoring import score_listing

logger = get_logger(__name__)

# Fields with their own merge rule; every other attribute is "incoming if present".
_SPECIAL_MERGE_FIELDS: Final = frozenset({"title", "condition", "features_tags", "image_urls"})
MERGE_SCALAR_FIELDS: Final[tuple[str, ...]] = tuple(
    name for name in ListingAttributes.model_fields if name not in _SPECIAL_MERGE_FIELDS
)


def union_urls(*groups: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Ordered set union: first occurrence wins, empty strings dropped."""
    seen: dict[str, None] = {}
    for group in groups:
        for url in group:
            if url:
                seen.setdefault(url, None)
    return tuple(seen)


def merge_listing(existing: Listing, record: ParsedListing, now: datetime) -> Listing:
    """Apply the field-level merge policy of an incoming record onto a listing.

    - Scalars take the incoming value when present, else keep the existing one.
    - ``all_urls`` and ``image_urls`` are unioned.
    - ``primary_url`` is only set when previously unset.
    - Identity keys and ``first_seen_at`` are never touched.
    - The score is recomputed from the merged attributes.
    """
    updates: dict[str, object] = {}
    for name in MERGE_SCALAR_FIELDS:
        incoming = getattr(record, name)
        if incoming is not None:
            updates[name] = incoming

    if record.title:
        updates["title"] = record.title
    if record.condition is not None and record.condition is not Condition.UNKNOWN:
        updates["condition"] = record.condition
    if record.features_tags:
        updates["features_tags"] = record.features_tags

    updates["image_urls"] = union_urls(existing.image_urls, record.image_urls)
    updates["all_urls"] = union_urls(existing.all_urls, (record.url,))
    updates["primary_url"] = existing.primary_url or record.url
    updates["last_seen_at"] = now
    updates["is_active"] = True

    merged = existing.model_copy(update=updates)
    return merged.model_copy(update={"score": score_listing(merged)})


def new_listing_attributes(record: ParsedListing) -> ListingAttributes:
    """Descriptive attributes for a listing created from a record."""
    return ListingAttributes.model_validate(
        {
            **{name: getattr(record, name) for name in ListingAttributes.model_fields},
            "condition": record.condition or Condition.UNKNOWN,
            "image_urls": union_urls(record.image_urls),
        }
    )


class ListingUpserter:
    """Resolve each parsed record to a canonical listing and persist it.

    One record is one unit of work: the listing write and the provenance
    upsert are committed together, or rolled back together on failure.
    """

    def __init__(self, storage: ListingStorage, matcher: ListingMatcher | None = None) -> None:
        self.storage = storage
        self.matcher = matcher or ListingMatcher(storage)

    async def upsert(self, record: ParsedListing, *, now: datetime | None = None) -> UpsertResult:
        """Resolve, create or merge, rescore and record provenance for one record.

        Args:
            record: Parsed listing observation.
            now: Observation time (defaults to the current UTC time).

        Returns:
            UpsertResult describing the resolved listing.

        Raises:
            SourceWebsiteNotFoundError: The record's source website was never seeded.
            FingerprintConflictError: A concurrent insert collided and neither
                fingerprint could be re-read.
        """
        seen_at = now or datetime.now(UTC)
        website = await self.storage.require_source_website(record.source_website_code)
        assert website.id is not None

        decision = await self.matcher.resolve(record, website)

        async with self.storage.transaction():
            if decision.listing is not None:
                listing = merge_listing(decision.listing, record, seen_at)
                await self.storage.update_listing(listing)
                created = False
                strategy = decision.strategy
                logger.info(
                    "listing_merged",
                    listing_id=listing.id,
                    strategy=strategy.value,
                    source=website.code,
                    source_listing_id=record.source_listing_id,
                    score=listing.score,
                )
            else:
                listing, created = await self._create_or_recover(record, decision, seen_at)
                strategy = MatchStrategy.NONE if created else MatchStrategy.INSERT_CONFLICT

            source = await self.storage.upsert_listing_source(
                listing_id=listing.id,
                source_website_id=website.id,
                source_listing_id=record.source_listing_id,
                url=record.url,
                source_reference_code=record.reference_raw or None,
                source_reference_code_normalized=decision.normalized_reference,
                source_title=record.title,
                raw_payload=record.raw_payload,
                now=seen_at,
            )

        return UpsertResult(
            listing_id=listing.id,
            listing_source_id=source.id,
            created_new_listing=created,
            score=listing.score,
            price_monthly_cents=listing.price_monthly_cents,
            strategy=strategy.value,
        )

    async def _create_or_recover(
        self, record: ParsedListing, decision: MatchDecision, now: datetime
    ) -> tuple[Listing, bool]:
        """Insert a new listing; on a fingerprint collision, merge into the winner.

        Returns:
            Tuple of (listing, created_new_listing).
        """
        attrs = new_listing_attributes(record)
        try:
            listing = await self.storage.insert_listing(
                attrs,
                fingerprint=decision.fingerprint_to_persist,
                reference_code=record.reference_raw or None,
                reference_code_normalized=decision.reference_to_persist,
                primary_url=record.url,
                all_urls=union_urls((record.url,)),
                score=score_listing(attrs),
                now=now,
            )
        except FingerprintConflictError as conflict:
            existing = await self._refetch_conflicting(record, decision, conflict)
            listing = merge_listing(existing, record, now)
            await self.storage.update_listing(listing)
            logger.warning(
                "fingerprint_conflict_recovered",
                fingerprint=conflict.fingerprint,
                listing_id=listing.id,
                source=record.source_website_code,
                source_listing_id=record.source_listing_id,
            )
            return listing, False

        logger.info(
            "listing_created",
            listing_id=listing.id,
            source=record.source_website_code,
            source_listing_id=record.source_listing_id,
            fingerprint=listing.fingerprint,
            reference=listing.reference_code_normalized,
            score=listing.score,
        )
        return listing, True

    async def _refetch_conflicting(
        self, record: ParsedListing, decision: MatchDecision, conflict: FingerprintConflictError
    ) -> Listing:
        """Re-read the listing that won an insert race.

        A listing found only under the disambiguated fingerprint is accepted
        when it already carries this record's provenance or passes the
        fingerprint tolerance check.

        Raises:
            FingerprintConflictError: Neither fingerprint resolves to a listing,
                or the fallback one belongs to a different unit.
        """
        existing = await self.storage.get_listing_by_fingerprint(conflict.fingerprint)
        if existing is None and conflict.fingerprint != decision.fallback_fingerprint:
            existing = await self.storage.get_listing_by_fingerprint(decision.fallback_fingerprint)
        if existing is None:
            raise conflict
        if existing.fingerprint == decision.fallback_fingerprint and not (
            await self._is_same_source(existing, record)
            or compare(existing, record).same_unit_by_fingerprint
        ):
            raise conflict
        return existing

    async def _is_same_source(self, listing: Listing, record: ParsedListing) -> bool:
        website = await self.storage.require_source_website(record.source_website_code)
        assert website.id is not None
        return await self.storage.is_linked(listing.id, website.id, record.source_listing_id)
