"""Shared row-mapping utilities for the storage layer."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Final

import aiosqlite

from monaco_rentals.models import (
    Listing,
    ListingAttributes,
    ListingSource,
    SourceWebsite,
)

# Descriptive columns on the listings table, one per ListingAttributes field.
ATTRIBUTE_COLUMNS: Final[tuple[str, ...]] = tuple(ListingAttributes.model_fields)

# Columns holding JSON-encoded arrays.
JSON_ARRAY_COLUMNS: Final[frozenset[str]] = frozenset({"features_tags", "image_urls", "all_urls"})


def to_db_value(value: Any) -> Any:
    """Convert a model field value to something sqlite3 can bind."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (tuple, list)):
        return json.dumps(list(value))
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def attribute_values(attrs: ListingAttributes) -> dict[str, Any]:
    """Column -> bindable value for every descriptive attribute."""
    return {column: to_db_value(getattr(attrs, column)) for column in ATTRIBUTE_COLUMNS}


def build_listing_insert(
    attrs: ListingAttributes,
    *,
    fingerprint: str,
    reference_code: str | None,
    reference_code_normalized: str | None,
    primary_url: str | None,
    all_urls: tuple[str, ...],
    score: int | None,
    first_seen_at: datetime,
    last_seen_at: datetime,
) -> tuple[list[str], list[Any]]:
    """Build column names and values for inserting a new listing row.

    Returns:
        Tuple of (column_names, values) ready for a parameterised INSERT.
    """
    data = attribute_values(attrs)
    data.update(
        {
            "fingerprint": fingerprint,
            "reference_code": reference_code,
            "reference_code_normalized": reference_code_normalized,
            "primary_url": primary_url,
            "all_urls": to_db_value(all_urls),
            "score": score,
            "first_seen_at": first_seen_at.isoformat(),
            "last_seen_at": last_seen_at.isoformat(),
            "is_active": 1,
        }
    )
    return list(data.keys()), list(data.values())


def _parse_row(row: aiosqlite.Row) -> dict[str, Any]:
    data = dict(row)
    for column in JSON_ARRAY_COLUMNS:
        if column in data:
            data[column] = json.loads(data[column]) if data[column] else []
    return data


def row_to_listing(row: aiosqlite.Row) -> Listing:
    """Convert a listings row to a Listing."""
    data = _parse_row(row)
    data.pop("created_at", None)
    return Listing.model_validate(data)


def row_to_listing_source(row: aiosqlite.Row) -> ListingSource:
    """Convert a listing_sources row to a ListingSource."""
    data = dict(row)
    data.pop("created_at", None)
    data["raw_payload"] = json.loads(data["raw_payload"]) if data["raw_payload"] else {}
    return ListingSource.model_validate(data)


def row_to_source_website(row: aiosqlite.Row) -> SourceWebsite:
    """Convert a source_websites row to a SourceWebsite."""
    return SourceWebsite(
        id=row["id"],
        code=row["code"],
        name=row["name"],
        base_url=row["base_url"],
    )
