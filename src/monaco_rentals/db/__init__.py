"""Database storage for canonical listings and provenance records."""

from monaco_rentals.db.storage import (
    FingerprintConflictError,
    ListingStorage,
    SourceWebsiteNotFoundError,
)

__all__ = ["FingerprintConflictError", "ListingStorage", "SourceWebsiteNotFoundError"]
