"""Property-based tests using Hypothesis.

Tests invariants of the pure building blocks: reference normalization,
fingerprint bucketing, tolerance checks and the rental score.
"""

from hypothesis import given
from hypothesis import strategies as st

from monaco_rentals.matching.tolerance import prices_match
from monaco_rentals.models import (
    ContractType,
    InteriorCondition,
    ListingAttributes,
    PropertyType,
)
from monaco_rentals.scoring import compute_rental_score, score_listing
from monaco_rentals.utils.normalize import (
    FINGERPRINT_PRICE_BUCKET_CENTS,
    build_fingerprint,
    normalize_reference,
    round_price_bucket,
)

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# Monthly rents in cents, up to 100k EUR
prices = st.integers(min_value=0, max_value=10_000_000)

areas = st.one_of(st.none(), st.floats(min_value=0, max_value=1000, allow_nan=False))
small_counts = st.one_of(st.none(), st.integers(min_value=0, max_value=10))
flags = st.one_of(st.none(), st.booleans())

reference_text = st.text(
    alphabet=st.sampled_from("ABCrif _-0123456789é\t"),
    max_size=30,
)

listing_attributes = st.builds(
    ListingAttributes,
    title=st.just("Listing"),
    city=st.just("Monaco"),
    district=st.one_of(
        st.none(),
        st.sampled_from(["Larvotto", "Monte-Carlo", "Condamine", "Fontvieille", "Jardin Exotique"]),
    ),
    contract_type=st.just(ContractType.RENT),
    property_type=st.just(PropertyType.APARTMENT),
    price_monthly_cents=prices,
    rooms=small_counts,
    total_area_sqm=areas,
    living_area_sqm=areas,
    terrace_area_sqm=areas,
    parking_spaces=small_counts,
    has_concierge=flags,
    has_elevator=flags,
    has_ac=flags,
    interior_condition=st.one_of(st.none(), st.sampled_from(InteriorCondition)),
)


class TestNormalizeReferenceProperties:
    @given(raw=reference_text)
    def test_idempotent(self, raw: str) -> None:
        once = normalize_reference(raw)
        if once is not None:
            assert normalize_reference(once) == once

    @given(raw=reference_text)
    def test_canonical_shape(self, raw: str) -> None:
        code = normalize_reference(raw)
        if code is None:
            return
        assert code == code.upper()
        assert not code.endswith("_")
        assert "__" not in code
        assert not any(ch.isspace() for ch in code)


class TestFingerprintProperties:
    @given(price=prices)
    def test_bucket_is_nearest_multiple(self, price: int) -> None:
        bucket = round_price_bucket(price)
        assert bucket % FINGERPRINT_PRICE_BUCKET_CENTS == 0
        assert abs(bucket - price) <= FINGERPRINT_PRICE_BUCKET_CENTS // 2

    @given(price=prices)
    def test_price_is_the_only_segment_that_moves(self, price: int) -> None:
        fp = build_fingerprint(city="Monaco", district="Larvotto", price_monthly_cents=price)
        head, _, tail = fp.rpartition("|p:")
        assert head == "monaco|larvotto|liv:0|terr:0|bed:0|rooms:0"
        assert int(tail) == round_price_bucket(price)


class TestToleranceProperties:
    @given(a=prices, b=prices)
    def test_price_match_symmetric(self, a: int, b: int) -> None:
        assert prices_match(a, b) == prices_match(b, a)

    @given(a=prices)
    def test_price_match_reflexive(self, a: int) -> None:
        assert prices_match(a, a)


class TestScoreProperties:
    @given(attrs=listing_attributes)
    def test_total_in_bounds(self, attrs: ListingAttributes) -> None:
        assert 0 <= score_listing(attrs) <= 100

    @given(attrs=listing_attributes)
    def test_subscores_in_bounds(self, attrs: ListingAttributes) -> None:
        breakdown = compute_rental_score(attrs)
        assert breakdown.location in {6, 12, 18, 24, 30}
        assert 0 <= breakdown.apartment <= 30
        assert 0 <= breakdown.building <= 25
        assert 0 <= breakdown.economics <= 15

    @given(attrs=listing_attributes)
    def test_deterministic(self, attrs: ListingAttributes) -> None:
        assert score_listing(attrs) == score_listing(attrs.model_copy())

    @given(attrs=listing_attributes, price=prices)
    def test_cheaper_never_scores_lower(self, attrs: ListingAttributes, price: int) -> None:
        cheaper = attrs.model_copy(update={"price_monthly_cents": max(1, price // 2)})
        pricier = attrs.model_copy(update={"price_monthly_cents": max(1, price)})
        assert score_listing(cheaper) >= score_listing(pricier)
