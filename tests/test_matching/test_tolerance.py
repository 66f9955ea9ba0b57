"""Tests for same-unit tolerance checks."""

from collections.abc import Callable

import pytest

from monaco_rentals.matching.tolerance import (
    compare,
    known_areas_match,
    optional_areas_match,
    prices_match,
    terraces_match,
)
from monaco_rentals.models import ParsedListing


class TestPricesMatch:
    @pytest.mark.parametrize(
        ("price1", "price2", "expected"),
        [
            (850_000, 850_000, True),
            (850_000, 860_000, True),  # exactly 100 EUR
            (850_000, 860_001, False),
            (0, 0, True),  # both on request
            (0, 5_000, True),
            (0, 20_000, False),
        ],
    )
    def test_tolerance(self, price1: int, price2: int, expected: bool) -> None:
        assert prices_match(price1, price2) is expected

    def test_symmetric(self) -> None:
        assert prices_match(100_000, 200_000) == prices_match(200_000, 100_000)


class TestAreaMatching:
    def test_optional_both_unknown_match(self) -> None:
        assert optional_areas_match(None, None)

    def test_optional_one_unknown_does_not_match(self) -> None:
        assert not optional_areas_match(100.0, None)
        assert not optional_areas_match(None, 100.0)

    def test_optional_within_tolerance(self) -> None:
        assert optional_areas_match(100.0, 105.0)
        assert not optional_areas_match(100.0, 105.5)

    def test_known_requires_both_values(self) -> None:
        assert not known_areas_match(None, None)
        assert not known_areas_match(0.0, 0.0)
        assert known_areas_match(100.0, 96.0)

    def test_terrace_missing_is_compatible(self) -> None:
        assert terraces_match(None, 30.0)
        assert terraces_match(0.0, 30.0)
        assert terraces_match(10.0, 15.0)
        assert not terraces_match(10.0, 15.5)


class TestCompare:
    def test_livable_area_rescues_total_mismatch(
        self, make_record: Callable[..., ParsedListing]
    ) -> None:
        """One agency includes the terrace in the total, the other does not."""
        with_terrace = make_record(total_area_sqm=120.0, terrace_area_sqm=20.0)
        without = make_record(total_area_sqm=100.0)
        check = compare(with_terrace, without)

        assert not check.total_area
        assert check.livable_area
        assert check.same_unit_by_reference

    def test_fingerprint_verification_needs_rooms(
        self, make_record: Callable[..., ParsedListing]
    ) -> None:
        check = compare(make_record(rooms=3), make_record(rooms=4))
        assert check.same_unit_by_reference
        assert not check.same_unit_by_fingerprint

    def test_missing_incoming_rooms_never_match(
        self, make_record: Callable[..., ParsedListing]
    ) -> None:
        check = compare(make_record(rooms=None), make_record(rooms=None))
        assert not check.rooms

    def test_structural_needs_known_area(self, make_record: Callable[..., ParsedListing]) -> None:
        check = compare(make_record(total_area_sqm=None), make_record(total_area_sqm=None))
        assert check.same_unit_by_reference
        assert not check.same_unit_by_structure

    def test_structural_rejects_terrace_difference(
        self, make_record: Callable[..., ParsedListing]
    ) -> None:
        check = compare(
            make_record(terrace_area_sqm=10.0), make_record(terrace_area_sqm=30.0)
        )
        assert not check.same_unit_by_structure

    def test_to_dict(self, make_record: Callable[..., ParsedListing]) -> None:
        data = compare(make_record(), make_record()).to_dict()
        assert data == {
            "price": True,
            "total_area": True,
            "livable_area": True,
            "rooms": True,
            "known_total_area": True,
            "terrace": True,
        }
