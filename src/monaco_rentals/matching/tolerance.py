"""Pure tolerance checks deciding whether two records can describe the same unit."""

from dataclasses import dataclass
from typing import Final

from monaco_rentals.models import ListingAttributes

# Monthly rent difference allowed between sources (100 EUR)
PRICE_TOLERANCE_CENTS: Final = 10_000

# Area differences allowed between sources, in square metres
AREA_TOLERANCE_SQM: Final = 5.0
TERRACE_TOLERANCE_SQM: Final = 5.0


def prices_match(price1: int, price2: int, tolerance: int = PRICE_TOLERANCE_CENTS) -> bool:
    """Check if two monthly prices (cents) are within tolerance.

    Two "price on request" listings (both 0) always match.
    """
    if price1 == 0 and price2 == 0:
        return True
    return abs(price1 - price2) <= tolerance


def optional_areas_match(
    area1: float | None, area2: float | None, tolerance: float = AREA_TOLERANCE_SQM
) -> bool:
    """Areas match when both are unknown, or both known and within tolerance."""
    if area1 is None or area2 is None:
        return area1 is None and area2 is None
    return abs(area1 - area2) <= tolerance


def known_areas_match(
    area1: float | None, area2: float | None, tolerance: float = AREA_TOLERANCE_SQM
) -> bool:
    """Areas match only when both are known (non-zero) and within tolerance."""
    if not area1 or not area2:
        return False
    return abs(area1 - area2) <= tolerance


def terraces_match(
    terrace1: float | None, terrace2: float | None, tolerance: float = TERRACE_TOLERANCE_SQM
) -> bool:
    """Terraces are compatible unless both are known and differ by more than tolerance."""
    if not terrace1 or not terrace2:
        return True
    return abs(terrace1 - terrace2) <= tolerance


@dataclass(frozen=True)
class ToleranceCheck:
    """Outcome of comparing an existing listing with an incoming record."""

    price: bool
    total_area: bool
    livable_area: bool
    rooms: bool
    known_total_area: bool
    terrace: bool

    @property
    def area(self) -> bool:
        """Total area or livable area (total minus terrace) agree."""
        return self.total_area or self.livable_area

    @property
    def same_unit_by_reference(self) -> bool:
        """Verification for a cross-source reference-code candidate."""
        return self.price and self.area

    @property
    def same_unit_by_fingerprint(self) -> bool:
        """Verification for a cross-source fingerprint candidate.

        Rooms must also agree: two units in the same building at the same
        price bracket share a fingerprint only by coincidence of area.
        """
        return self.price and self.area and self.rooms

    @property
    def same_unit_by_structure(self) -> bool:
        """Verification for a same-building candidate."""
        return self.price and self.known_total_area and self.terrace

    def to_dict(self) -> dict[str, bool]:
        """Convert to dict for logging."""
        return {
            "price": self.price,
            "total_area": self.total_area,
            "livable_area": self.livable_area,
            "rooms": self.rooms,
            "known_total_area": self.known_total_area,
            "terrace": self.terrace,
        }


def compare(existing: ListingAttributes, incoming: ListingAttributes) -> ToleranceCheck:
    """Compare an existing listing with an incoming record field by field."""
    return ToleranceCheck(
        price=prices_match(existing.price_monthly_cents, incoming.price_monthly_cents),
        total_area=optional_areas_match(existing.total_area_sqm, incoming.total_area_sqm),
        livable_area=optional_areas_match(existing.livable_area_sqm, incoming.livable_area_sqm),
        rooms=incoming.rooms is not None and existing.rooms == incoming.rooms,
        known_total_area=known_areas_match(existing.total_area_sqm, incoming.total_area_sqm),
        terrace=terraces_match(existing.terrace_area_sqm, incoming.terrace_area_sqm),
    )
