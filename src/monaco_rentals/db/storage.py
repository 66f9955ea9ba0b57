"""SQLite storage for canonical listings and their source provenance."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from monaco_rentals.db.row_mappers import (
    ATTRIBUTE_COLUMNS,
    attribute_values,
    build_listing_insert,
    row_to_listing,
    row_to_listing_source,
    row_to_source_website,
    to_db_value,
)
from monaco_rentals.logging import get_logger
from monaco_rentals.models import (
    ContractType,
    Listing,
    ListingAttributes,
    ListingSource,
    SourceWebsite,
)

__all__ = ["FingerprintConflictError", "ListingStorage", "SourceWebsiteNotFoundError"]

logger = get_logger(__name__)

_ATTRIBUTE_SCHEMA = {
    "title": "TEXT NOT NULL",
    "city": "TEXT NOT NULL",
    "district": "TEXT",
    "building_name": "TEXT",
    "address": "TEXT",
    "contract_type": "TEXT NOT NULL",
    "property_type": "TEXT NOT NULL",
    "price_monthly_cents": "INTEGER NOT NULL",
    "currency": "TEXT NOT NULL DEFAULT 'EUR'",
    "service_charges_monthly_cents": "INTEGER",
    "service_charges_included": "BOOLEAN",
    "rooms": "INTEGER",
    "bedrooms": "INTEGER",
    "bathrooms": "INTEGER",
    "total_area_sqm": "REAL",
    "living_area_sqm": "REAL",
    "terrace_area_sqm": "REAL",
    "floor": "INTEGER",
    "parking_spaces": "INTEGER",
    "cellars": "INTEGER",
    "is_mixed_use": "BOOLEAN",
    "has_rooftop": "BOOLEAN",
    "has_terrace": "BOOLEAN",
    "has_sea_view": "BOOLEAN",
    "has_elevator": "BOOLEAN",
    "has_concierge": "BOOLEAN",
    "has_ac": "BOOLEAN",
    "condition": "TEXT",
    "interior_condition": "TEXT",
    "features_tags": "TEXT NOT NULL DEFAULT '[]'",
    "description": "TEXT",
    "description_lang": "TEXT",
    "agency_name": "TEXT",
    "agency_address": "TEXT",
    "agency_phone": "TEXT",
    "agency_email": "TEXT",
    "agency_website": "TEXT",
    "image_urls": "TEXT NOT NULL DEFAULT '[]'",
}
assert set(_ATTRIBUTE_SCHEMA) == set(ATTRIBUTE_COLUMNS)


class SourceWebsiteNotFoundError(LookupError):
    """A record references a source website code that was never seeded."""

    def __init__(self, code: str) -> None:
        super().__init__(f"SourceWebsite with code {code!r} not found")
        self.code = code


class FingerprintConflictError(Exception):
    """Inserting a listing collided with an existing row on the fingerprint key."""

    def __init__(self, fingerprint: str) -> None:
        super().__init__(f"Listing with fingerprint {fingerprint!r} already exists")
        self.fingerprint = fingerprint


def _is_fingerprint_violation(error: aiosqlite.IntegrityError) -> bool:
    return "listings.fingerprint" in str(error)


class ListingStorage:
    """SQLite-based storage for listings, listing sources and source websites.

    Writes made by the upsert path (``insert_listing``, ``update_listing``,
    ``upsert_listing_source``) are not committed individually; wrap them in
    ``transaction()`` so one record's writes land or roll back together.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Ensure the directory for the database exists."""
        if self.db_path != ":memory:":
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA busy_timeout=5000")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute("PRAGMA foreign_keys=ON")
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def initialize(self) -> None:
        """Initialize the database schema."""
        conn = await self._get_connection()
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS source_websites (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                base_url TEXT NOT NULL,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)

        attribute_ddl = ",\n".join(
            f"                {column} {ddl}" for column, ddl in _ATTRIBUTE_SCHEMA.items()
        )
        await conn.execute(f"""
            CREATE TABLE IF NOT EXISTS listings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                fingerprint TEXT NOT NULL UNIQUE,
                reference_code TEXT,
                reference_code_normalized TEXT UNIQUE,
{attribute_ddl},
                primary_url TEXT,
                all_urls TEXT NOT NULL DEFAULT '[]',
                score INTEGER,
                first_seen_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_listings_building_rooms
            ON listings(building_name, rooms)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_listings_first_seen
            ON listings(first_seen_at)
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS listing_sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                listing_id INTEGER NOT NULL,
                source_website_id INTEGER NOT NULL,
                source_listing_id TEXT NOT NULL,
                url TEXT NOT NULL,
                source_reference_code TEXT,
                source_reference_code_normalized TEXT,
                source_title TEXT,
                raw_payload TEXT NOT NULL DEFAULT '{}',
                first_seen_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL,
                is_active_on_source BOOLEAN NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (listing_id) REFERENCES listings(id),
                FOREIGN KEY (source_website_id) REFERENCES source_websites(id),
                UNIQUE(source_website_id, source_listing_id)
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_listing_sources_listing
            ON listing_sources(listing_id)
        """)

        await conn.commit()

        logger.info("database_initialized", db_path=self.db_path)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Commit everything written inside the block, or roll it all back on error."""
        conn = await self._get_connection()
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        else:
            await conn.commit()

    # ── Source websites ──────────────────────────────────────────────────────

    async def upsert_source_website(self, website: SourceWebsite) -> SourceWebsite:
        """Create or update a source website by code.

        Args:
            website: Website to seed; its ``id`` is ignored.

        Returns:
            The stored website with its database id.
        """
        conn = await self._get_connection()
        await conn.execute(
            """
            INSERT INTO source_websites (code, name, base_url)
            VALUES (?, ?, ?)
            ON CONFLICT(code) DO UPDATE SET
                name = excluded.name,
                base_url = excluded.base_url
            """,
            (website.code, website.name, website.base_url),
        )
        await conn.commit()

        stored = await self.get_source_website(website.code)
        assert stored is not None
        logger.debug("source_website_saved", code=stored.code, id=stored.id)
        return stored

    async def get_source_website(self, code: str) -> SourceWebsite | None:
        """Get a source website by its code (case-insensitive)."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM source_websites WHERE code = ?",
            (code.strip().upper(),),
        )
        row = await cursor.fetchone()
        return row_to_source_website(row) if row is not None else None

    async def require_source_website(self, code: str) -> SourceWebsite:
        """Get a source website by code, raising if it was never seeded.

        Raises:
            SourceWebsiteNotFoundError: No website with this code exists.
        """
        website = await self.get_source_website(code)
        if website is None:
            raise SourceWebsiteNotFoundError(code)
        return website

    async def get_all_source_websites(self) -> list[SourceWebsite]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM source_websites ORDER BY code")
        rows = await cursor.fetchall()
        return [row_to_source_website(row) for row in rows]

    # ── Listing lookups ──────────────────────────────────────────────────────

    async def get_listing(self, listing_id: int) -> Listing | None:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,))
        row = await cursor.fetchone()
        return row_to_listing(row) if row is not None else None

    async def get_listing_by_fingerprint(self, fingerprint: str) -> Listing | None:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM listings WHERE fingerprint = ?",
            (fingerprint,),
        )
        row = await cursor.fetchone()
        return row_to_listing(row) if row is not None else None

    async def get_listing_by_reference(self, reference_normalized: str) -> Listing | None:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM listings WHERE reference_code_normalized = ?",
            (reference_normalized,),
        )
        row = await cursor.fetchone()
        return row_to_listing(row) if row is not None else None

    async def find_listings_by_reference_prefix(self, prefix: str) -> list[Listing]:
        """Listings whose normalized reference is ``prefix`` or starts with ``prefix_``.

        Results are in insertion order, which is the tie-break order for
        fuzzy reference matching.
        """
        conn = await self._get_connection()
        child_prefix = f"{prefix}_"
        cursor = await conn.execute(
            """
            SELECT * FROM listings
            WHERE reference_code_normalized = ?
               OR substr(reference_code_normalized, 1, ?) = ?
            ORDER BY id
            """,
            (prefix, len(child_prefix), child_prefix),
        )
        rows = await cursor.fetchall()
        return [row_to_listing(row) for row in rows]

    async def find_structural_candidates(
        self,
        *,
        building_name: str,
        rooms: int,
        total_area_sqm: float,
        area_tolerance_sqm: float,
        district: str | None = None,
    ) -> list[Listing]:
        """Listings in the same building with the same rooms and a similar total area.

        Args:
            building_name: Exact building name to match.
            rooms: Exact room count to match.
            total_area_sqm: Incoming total area.
            area_tolerance_sqm: Allowed total-area difference, inclusive.
            district: When given, candidates must also share the district.

        Returns:
            Candidate listings in insertion order.
        """
        conn = await self._get_connection()
        query = """
            SELECT * FROM listings
            WHERE building_name = ?
              AND rooms = ?
              AND total_area_sqm BETWEEN ? AND ?
        """
        params: list[Any] = [
            building_name,
            rooms,
            total_area_sqm - area_tolerance_sqm,
            total_area_sqm + area_tolerance_sqm,
        ]
        if district:
            query += " AND district = ?"
            params.append(district)
        query += " ORDER BY id"

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [row_to_listing(row) for row in rows]

    async def get_all_listings(self, *, contract_type: ContractType | None = None) -> list[Listing]:
        """Get all listings, optionally restricted to one contract type."""
        conn = await self._get_connection()
        if contract_type is None:
            cursor = await conn.execute("SELECT * FROM listings ORDER BY id")
        else:
            cursor = await conn.execute(
                "SELECT * FROM listings WHERE contract_type = ? ORDER BY id",
                (contract_type.value,),
            )
        rows = await cursor.fetchall()
        return [row_to_listing(row) for row in rows]

    async def get_listing_count(self) -> int:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT COUNT(*) FROM listings")
        row = await cursor.fetchone()
        return row[0] if row else 0

    # ── Listing writes ───────────────────────────────────────────────────────

    async def insert_listing(
        self,
        attrs: ListingAttributes,
        *,
        fingerprint: str,
        reference_code: str | None,
        reference_code_normalized: str | None,
        primary_url: str | None,
        all_urls: tuple[str, ...],
        score: int | None,
        now: datetime | None = None,
    ) -> Listing:
        """Insert a new canonical listing (not committed).

        Raises:
            FingerprintConflictError: A listing with this fingerprint already exists.
            aiosqlite.IntegrityError: Any other constraint violation.
        """
        conn = await self._get_connection()
        seen_at = now or datetime.now(UTC)
        columns, values = build_listing_insert(
            attrs,
            fingerprint=fingerprint,
            reference_code=reference_code,
            reference_code_normalized=reference_code_normalized,
            primary_url=primary_url,
            all_urls=all_urls,
            score=score,
            first_seen_at=seen_at,
            last_seen_at=seen_at,
        )
        col_list = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)

        try:
            cursor = await conn.execute(
                f"INSERT INTO listings ({col_list}) VALUES ({placeholders})",
                values,
            )
        except aiosqlite.IntegrityError as e:
            if _is_fingerprint_violation(e):
                raise FingerprintConflictError(fingerprint) from e
            raise

        listing_id = cursor.lastrowid
        assert listing_id is not None
        listing = await self.get_listing(listing_id)
        assert listing is not None
        logger.debug("listing_inserted", listing_id=listing_id, fingerprint=fingerprint)
        return listing

    async def update_listing(self, listing: Listing) -> None:
        """Persist a listing's mutable fields (not committed).

        Identity keys (fingerprint, reference codes) and ``first_seen_at`` are
        never written here.
        """
        conn = await self._get_connection()
        data = attribute_values(listing)
        data.update(
            {
                "primary_url": listing.primary_url,
                "all_urls": to_db_value(listing.all_urls),
                "score": listing.score,
                "last_seen_at": listing.last_seen_at.isoformat(),
                "is_active": int(listing.is_active),
            }
        )
        assignments = ", ".join(f"{column} = ?" for column in data)
        await conn.execute(
            f"UPDATE listings SET {assignments} WHERE id = ?",
            [*data.values(), listing.id],
        )

    async def update_score(self, listing_id: int, score: int) -> None:
        """Set a listing's score and commit."""
        conn = await self._get_connection()
        await conn.execute("UPDATE listings SET score = ? WHERE id = ?", (score, listing_id))
        await conn.commit()

    # ── Listing sources ──────────────────────────────────────────────────────

    async def get_listing_source(
        self, source_website_id: int, source_listing_id: str
    ) -> ListingSource | None:
        """Get the provenance record for a (website, source listing id) pair."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            SELECT * FROM listing_sources
            WHERE source_website_id = ? AND source_listing_id = ?
            """,
            (source_website_id, source_listing_id),
        )
        row = await cursor.fetchone()
        return row_to_listing_source(row) if row is not None else None

    async def get_listing_sources(self, listing_id: int) -> list[ListingSource]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM listing_sources WHERE listing_id = ? ORDER BY id",
            (listing_id,),
        )
        rows = await cursor.fetchall()
        return [row_to_listing_source(row) for row in rows]

    async def get_source_keys_by_listing(self) -> dict[int, list[tuple[str, str]]]:
        """Map listing id -> [(website code, source listing id), ...]."""
        conn = await self._get_connection()
        cursor = await conn.execute("""
            SELECT ls.listing_id, sw.code, ls.source_listing_id
            FROM listing_sources ls
            JOIN source_websites sw ON sw.id = ls.source_website_id
            ORDER BY ls.id
        """)
        rows = await cursor.fetchall()
        result: dict[int, list[tuple[str, str]]] = {}
        for row in rows:
            result.setdefault(row["listing_id"], []).append((row["code"], row["source_listing_id"]))
        return result

    async def is_linked(
        self, listing_id: int, source_website_id: int, source_listing_id: str
    ) -> bool:
        """Whether the listing already carries this exact provenance pair."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            SELECT 1 FROM listing_sources
            WHERE listing_id = ? AND source_website_id = ? AND source_listing_id = ?
            """,
            (listing_id, source_website_id, source_listing_id),
        )
        row = await cursor.fetchone()
        return row is not None

    async def upsert_listing_source(
        self,
        *,
        listing_id: int,
        source_website_id: int,
        source_listing_id: str,
        url: str,
        source_reference_code: str | None,
        source_reference_code_normalized: str | None,
        source_title: str | None,
        raw_payload: dict[str, Any],
        now: datetime | None = None,
    ) -> ListingSource:
        """Create or update the provenance record for a pair (not committed).

        On conflict the record is repointed at ``listing_id``; ``first_seen_at``
        keeps its original value.
        """
        conn = await self._get_connection()
        seen_at = (now or datetime.now(UTC)).isoformat()
        await conn.execute(
            """
            INSERT INTO listing_sources (
                listing_id, source_website_id, source_listing_id, url,
                source_reference_code, source_reference_code_normalized,
                source_title, raw_payload, first_seen_at, last_seen_at,
                is_active_on_source
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT(source_website_id, source_listing_id) DO UPDATE SET
                listing_id = excluded.listing_id,
                url = excluded.url,
                source_reference_code = excluded.source_reference_code,
                source_reference_code_normalized = excluded.source_reference_code_normalized,
                source_title = excluded.source_title,
                raw_payload = excluded.raw_payload,
                last_seen_at = excluded.last_seen_at,
                is_active_on_source = 1
            """,
            (
                listing_id,
                source_website_id,
                source_listing_id,
                url,
                source_reference_code,
                source_reference_code_normalized,
                source_title,
                json.dumps(raw_payload, default=str),
                seen_at,
                seen_at,
            ),
        )

        source = await self.get_listing_source(source_website_id, source_listing_id)
        assert source is not None
        return source
