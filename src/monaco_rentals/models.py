"""Pydantic models for source websites, scraped records and canonical listings."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContractType(StrEnum):
    """Whether a listing is offered for rent or for sale."""

    RENT = "rent"
    SALE = "sale"


class PropertyType(StrEnum):
    """Kind of property unit."""

    APARTMENT = "apartment"
    STUDIO = "studio"
    HOUSE = "house"
    VILLA = "villa"
    OFFICE = "office"
    SHOP = "shop"
    PARKING = "parking"
    OTHER = "other"


class Condition(StrEnum):
    """Building/unit condition as advertised by the agency."""

    NEW = "new"
    RENOVATED = "renovated"
    GOOD = "good"
    TO_RENOVATE = "to_renovate"
    UNKNOWN = "unknown"


class InteriorCondition(StrEnum):
    """Interior finish grade used by the rental score."""

    LUXURY_RENOVATED = "luxury_renovated"
    GOOD_MODERN = "good_modern"
    DATED_OK = "dated_ok"
    VERY_DATED = "very_dated"
    POOR = "poor"


DEFAULT_CURRENCY: Final = "EUR"


class SourceWebsite(BaseModel):
    """A known origin site, identified by a short unique code (e.g. "CIM")."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(min_length=1)
    name: str
    base_url: str
    id: int | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        """Source codes are stored upper-case."""
        return v.strip().upper()


DEFAULT_SOURCE_WEBSITES: Final[tuple[SourceWebsite, ...]] = (
    SourceWebsite(
        code="CIM",
        name="Chambre Immobilière de Monaco",
        base_url="https://www.chambre-immobiliere-monaco.mc",
    ),
    SourceWebsite(
        code="MCRE",
        name="Monte Carlo Real Estate",
        base_url="https://www.montecarlo-realestate.com",
    ),
)


class ListingAttributes(BaseModel):
    """Descriptive attributes shared by scraped records and canonical listings."""

    model_config = ConfigDict(frozen=True)

    title: str
    city: str
    district: str | None = None
    building_name: str | None = None
    address: str | None = None

    contract_type: ContractType
    property_type: PropertyType

    price_monthly_cents: int = Field(ge=0, description="Monthly rent in euro cents, 0 = on request")
    currency: str = DEFAULT_CURRENCY
    service_charges_monthly_cents: int | None = Field(default=None, ge=0)
    service_charges_included: bool | None = None

    rooms: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: int | None = Field(default=None, ge=0)
    total_area_sqm: float | None = Field(default=None, ge=0)
    living_area_sqm: float | None = Field(default=None, ge=0)
    terrace_area_sqm: float | None = Field(default=None, ge=0)
    floor: int | None = None

    parking_spaces: int | None = Field(default=None, ge=0)
    cellars: int | None = Field(default=None, ge=0)
    is_mixed_use: bool | None = None

    has_rooftop: bool | None = None
    has_terrace: bool | None = None
    has_sea_view: bool | None = None
    has_elevator: bool | None = None
    has_concierge: bool | None = None
    has_ac: bool | None = None
    condition: Condition | None = None
    interior_condition: InteriorCondition | None = None

    features_tags: tuple[str, ...] = ()
    description: str | None = None
    description_lang: str | None = None

    agency_name: str | None = None
    agency_address: str | None = None
    agency_phone: str | None = None
    agency_email: str | None = None
    agency_website: str | None = None

    image_urls: tuple[str, ...] = ()

    @property
    def livable_area_sqm(self) -> float | None:
        """Total area minus terrace, used for cross-source area comparisons."""
        if self.total_area_sqm is None:
            return None
        return self.total_area_sqm - (self.terrace_area_sqm or 0)


class ParsedListing(ListingAttributes):
    """One observation of a listing, as produced by a site parser."""

    source_website_code: str = Field(min_length=1)
    source_listing_id: str = Field(min_length=1)
    url: str
    reference_raw: str | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source_website_code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        """Source codes are matched upper-case."""
        return v.strip().upper()


class Listing(ListingAttributes):
    """Canonical record for one physical unit, merged from every source observation."""

    id: int
    fingerprint: str
    reference_code: str | None = None
    reference_code_normalized: str | None = None

    primary_url: str | None = None
    all_urls: tuple[str, ...] = ()
    score: int | None = Field(default=None, ge=0, le=100)

    first_seen_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_active: bool = True


class ListingSource(BaseModel):
    """Provenance: one source website's observation of a canonical listing."""

    model_config = ConfigDict(frozen=True)

    id: int
    listing_id: int
    source_website_id: int
    source_listing_id: str
    url: str
    source_reference_code: str | None = None
    source_reference_code_normalized: str | None = None
    source_title: str | None = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    first_seen_at: datetime
    last_seen_at: datetime
    is_active_on_source: bool = True


class UpsertResult(BaseModel):
    """Outcome of resolving and persisting one parsed record."""

    model_config = ConfigDict(frozen=True)

    listing_id: int
    listing_source_id: int
    created_new_listing: bool
    score: int | None
    price_monthly_cents: int
    strategy: str = Field(description="Name of the match strategy that resolved the record")
