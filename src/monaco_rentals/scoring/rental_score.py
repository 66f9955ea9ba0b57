"""Monaco rental desirability score (0-100).

Four independent subscores, summed and clamped:
- Location (0-30): district tier
- Apartment quality (0-30): size vs target, terrace, interior condition
- Building & amenities (0-25): parking, concierge, elevator, AC
- Economics (0-15): monthly rent vs target
"""

import unicodedata
from dataclasses import dataclass
from typing import Final

from monaco_rentals.models import InteriorCondition, ListingAttributes
from monaco_rentals.utils.normalize import round_half_up

# ── Location tiers (checked in order, substring match on normalized district) ──

LOCATION_TIERS: Final[tuple[tuple[int, tuple[str, ...]], ...]] = (
    (30, ("la rousse", "saint roman", "larvotto")),
    (24, ("anse du portier", "monte carlo", "monte-carlo", "carre d'or")),
    (18, ("condamine", "moneghetti")),
    (12, ("port", "fontvieille")),
)
# Jardin Exotique, Monaco Ville, other minor areas, and no district at all.
LOCATION_DEFAULT: Final = 6

# ── Apartment quality ──────────────────────────────────────────────────────────

TARGET_AREA_TWO_ROOMS: Final = 75.0
TARGET_AREA_DEFAULT: Final = 90.0

INTERIOR_SCORES: Final[dict[InteriorCondition, int]] = {
    InteriorCondition.LUXURY_RENOVATED: 8,
    InteriorCondition.GOOD_MODERN: 6,
    InteriorCondition.DATED_OK: 4,
    InteriorCondition.VERY_DATED: 2,
    InteriorCondition.POOR: 0,
}
INTERIOR_DEFAULT: Final = 4

# ── Building & amenities ───────────────────────────────────────────────────────

PARKING_POINTS: Final = 9
CONCIERGE_POINTS: Final = 8
ELEVATOR_POINTS: Final = 4
AC_POINTS: Final = 4
BUILDING_MAX: Final = 25

# ── Economics ──────────────────────────────────────────────────────────────────

TARGET_RENT_EUR: Final = 9000.0
MAX_CONSIDERED_RENT_EUR: Final = 11000.0
BONUS_SPAN_EUR: Final = 2500.0
BONUS_MAX: Final = 2.0
ECONOMICS_MAX: Final = 15
ECONOMICS_RAW_MAX: Final = 17.0


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class RentalScore:
    """Breakdown of a listing's rental score."""

    location: int = 0
    size: int = 0
    terrace: int = 0
    interior: int = 0
    building: int = 0
    economics: int = 0

    @property
    def apartment(self) -> int:
        return _clamp(self.size + self.terrace + self.interior, 0, 30)

    @property
    def total(self) -> int:
        raw = self.location + self.apartment + self.building + self.economics
        return _clamp(round_half_up(raw), 0, 100)

    def to_dict(self) -> dict[str, int]:
        """Convert to dict for logging."""
        return {
            "location": self.location,
            "size": self.size,
            "terrace": self.terrace,
            "interior": self.interior,
            "apartment": self.apartment,
            "building": self.building,
            "economics": self.economics,
            "total": self.total,
        }


def normalize_district(district: str | None) -> str:
    """Strip accents, unify apostrophes and lower-case a district name."""
    if not district:
        return ""
    decomposed = unicodedata.normalize("NFD", district)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.replace("’", "'").lower().strip()


def location_score(district: str | None) -> int:
    """Tiered score for the district; unknown and minor districts tie at 6."""
    normalized = normalize_district(district)
    if not normalized:
        return LOCATION_DEFAULT
    for points, needles in LOCATION_TIERS:
        if any(needle in normalized for needle in needles):
            return points
    return LOCATION_DEFAULT


def livable_area(listing: ListingAttributes) -> float | None:
    """Living area if known, else total minus terrace, else total."""
    if listing.living_area_sqm is not None:
        return listing.living_area_sqm
    if listing.total_area_sqm and listing.terrace_area_sqm:
        return max(0.0, listing.total_area_sqm - listing.terrace_area_sqm)
    return listing.total_area_sqm


def size_score(rooms: int | None, area_sqm: float | None) -> int:
    """Score livable area against the minimum target for the room count (0-15)."""
    target = TARGET_AREA_TWO_ROOMS if rooms == 2 else TARGET_AREA_DEFAULT
    area = area_sqm or 0.0

    if area <= 0 or area <= 0.8 * target:
        return 0
    if area <= target:
        return 6
    if area <= target + 15:
        return 10
    return 15


def terrace_score(area_sqm: float | None, terrace_sqm: float | None) -> int:
    """Score terrace size absolutely and relative to the livable area (0-7)."""
    terrace = terrace_sqm or 0.0
    if terrace <= 0:
        return 0

    area = area_sqm or 0.0
    ratio = terrace / area if area > 0 else 0.0

    if ratio < 0.08 and terrace < 8:
        return 2
    if ratio < 0.20 and terrace < 20:
        return 4
    return 7


def interior_score(condition: InteriorCondition | None) -> int:
    if condition is None:
        return INTERIOR_DEFAULT
    return INTERIOR_SCORES.get(condition, INTERIOR_DEFAULT)


def building_score(listing: ListingAttributes) -> int:
    """Fixed points per amenity, clamped to 25."""
    total = 0
    if listing.parking_spaces is not None and listing.parking_spaces > 0:
        total += PARKING_POINTS
    if listing.has_concierge:
        total += CONCIERGE_POINTS
    if listing.has_elevator:
        total += ELEVATOR_POINTS
    if listing.has_ac:
        total += AC_POINTS
    return _clamp(total, 0, BUILDING_MAX)


def economics_score(price_monthly_cents: int) -> int:
    """Score the monthly rent against the target (0-15).

    Base is 15 at or under 9000 EUR, 5 at or over 11000 EUR, linear in
    between. Under target a bonus of one point per 2500 EUR below target is
    added, capped at +2. The raw 0-17 scale is rescaled to 0-15. Price on request (0)
    scores 0.
    """
    rent = price_monthly_cents / 100
    if rent <= 0:
        return 0

    if rent <= TARGET_RENT_EUR:
        base = 15.0
    elif rent >= MAX_CONSIDERED_RENT_EUR:
        base = 5.0
    else:
        penalty = 10 * (rent - TARGET_RENT_EUR) / (MAX_CONSIDERED_RENT_EUR - TARGET_RENT_EUR)
        base = 15.0 - penalty

    bonus = 0.0
    if rent < TARGET_RENT_EUR:
        bonus = min(BONUS_MAX, (TARGET_RENT_EUR - rent) / BONUS_SPAN_EUR)

    rescaled = round_half_up((base + bonus) * ECONOMICS_MAX / ECONOMICS_RAW_MAX)
    return _clamp(rescaled, 0, ECONOMICS_MAX)


def compute_rental_score(listing: ListingAttributes) -> RentalScore:
    """Compute the full score breakdown for a listing's current attributes."""
    area = livable_area(listing)
    return RentalScore(
        location=location_score(listing.district),
        size=size_score(listing.rooms, area),
        terrace=terrace_score(area, listing.terrace_area_sqm),
        interior=interior_score(listing.interior_condition),
        building=building_score(listing),
        economics=economics_score(listing.price_monthly_cents),
    )


def score_listing(listing: ListingAttributes) -> int:
    """Compute the 0-100 rental score. Pure; called on every listing write."""
    return compute_rental_score(listing).total
