"""Tests for reference-code normalization and fingerprinting."""

import pytest

from monaco_rentals.utils.normalize import (
    build_fingerprint,
    disambiguated_fingerprint,
    normalize_reference,
    reference_base_prefix,
    round_half_up,
    round_price_bucket,
)


class TestNormalizeReference:
    @pytest.mark.parametrize("raw", [None, "", "   ", "___"])
    def test_empty_input_returns_none(self, raw: str | None) -> None:
        assert normalize_reference(raw) is None

    def test_uppercases(self) -> None:
        assert normalize_reference("acl_2p") == "ACL_2P"

    def test_strips_rif_prefix(self) -> None:
        assert normalize_reference("RIF WL VILLA ANTOINETTE") == "WL_VILLA_ANTOINETTE"

    def test_strips_lowercase_rif_prefix(self) -> None:
        assert normalize_reference("rif ACL_2P_Chateau_Azur_") == "ACL_2P_CHATEAU_AZUR"

    def test_only_one_rif_prefix_is_stripped(self) -> None:
        assert normalize_reference("RIF RIF X") == "RIF_X"

    def test_rif_inside_code_is_kept(self) -> None:
        assert normalize_reference("ABC RIF 12") == "ABC_RIF_12"

    def test_rif_without_space_is_kept(self) -> None:
        assert normalize_reference("RIFLE 3") == "RIFLE_3"

    def test_collapses_whitespace_and_underscores(self) -> None:
        assert normalize_reference("  WL \t _ VILLA__ANTOINETTE ") == "WL_VILLA_ANTOINETTE"

    def test_strips_trailing_underscores(self) -> None:
        assert normalize_reference("ACL_2P___") == "ACL_2P"

    def test_cross_agency_formats_compare_equal(self) -> None:
        assert normalize_reference("RIF WL VILLA ANTOINETTE") == normalize_reference(
            "WL_VILLA_ANTOINETTE"
        )

    @pytest.mark.parametrize(
        "raw",
        ["ACL_2P_Chateau_Azur_9", "rif ACL 2P", "x", "RIF RIF ABC", "a  b__c  "],
    )
    def test_idempotent(self, raw: str) -> None:
        once = normalize_reference(raw)
        assert once is not None
        assert normalize_reference(once) == once


class TestReferenceBasePrefix:
    def test_strips_sequence_number(self) -> None:
        assert reference_base_prefix("ACL_2P_CHATEAU_AZUR_9") == "ACL_2P_CHATEAU_AZUR"

    def test_multi_digit_sequence(self) -> None:
        assert reference_base_prefix("WL_VILLA_123") == "WL_VILLA"

    def test_no_sequence_unchanged(self) -> None:
        assert reference_base_prefix("WL_VILLA_ANTOINETTE") == "WL_VILLA_ANTOINETTE"

    def test_digits_without_underscore_unchanged(self) -> None:
        assert reference_base_prefix("REF123") == "REF123"


class TestPriceRounding:
    @pytest.mark.parametrize(
        ("cents", "expected"),
        [
            (0, 0),
            (249, 0),
            (250, 500),
            (850_000, 850_000),
            (850_200, 850_000),
            (850_249, 850_000),
            (850_250, 850_500),
            (850_600, 850_500),
        ],
    )
    def test_round_price_bucket(self, cents: int, expected: int) -> None:
        assert round_price_bucket(cents) == expected

    @pytest.mark.parametrize(
        ("value", "expected"), [(0.5, 1), (1.5, 2), (2.5, 3), (13.41, 13), (-0.5, 0)]
    )
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


class TestBuildFingerprint:
    def test_full_format(self) -> None:
        fp = build_fingerprint(
            city="Monaco",
            district="Carré d'Or",
            building_name="Le Millefiori",
            living_area_sqm=85.0,
            terrace_area_sqm=12.5,
            bedrooms=2,
            rooms=3,
            price_monthly_cents=850_000,
        )
        assert fp == "monaco|carre-dor|le-millefiori|liv:85|terr:12.5|bed:2|rooms:3|p:850000"

    def test_missing_numerics_become_zero(self) -> None:
        fp = build_fingerprint(city="Monaco", price_monthly_cents=0)
        assert fp == "monaco|liv:0|terr:0|bed:0|rooms:0|p:0"

    def test_strips_diacritics_and_punctuation(self) -> None:
        fp = build_fingerprint(
            city="Monaco",
            district="Monte-Carlo",
            building_name="Château Périgord II",
            price_monthly_cents=100_000,
        )
        assert fp.startswith("monaco|montecarlo|chateau-perigord-ii|")

    def test_whitespace_runs_become_single_hyphen(self) -> None:
        fp = build_fingerprint(
            city="Monaco", building_name="  Le   Millefiori ", price_monthly_cents=0
        )
        assert "|le-millefiori|" in fp

    def test_same_bucket_same_fingerprint(self) -> None:
        base = {"city": "Monaco", "district": "Larvotto", "rooms": 3, "living_area_sqm": 90.0}
        assert build_fingerprint(price_monthly_cents=850_000, **base) == build_fingerprint(
            price_monthly_cents=850_200, **base
        )

    def test_different_bucket_different_fingerprint(self) -> None:
        base = {"city": "Monaco", "district": "Larvotto", "rooms": 3, "living_area_sqm": 90.0}
        assert build_fingerprint(price_monthly_cents=850_000, **base) != build_fingerprint(
            price_monthly_cents=850_600, **base
        )

    def test_deterministic(self) -> None:
        kwargs = {
            "city": "Monaco",
            "building_name": "Le Botticelli",
            "price_monthly_cents": 123_456,
        }
        assert build_fingerprint(**kwargs) == build_fingerprint(**kwargs)

    def test_rooms_distinguish_units(self) -> None:
        base = {"city": "Monaco", "building_name": "Le Botticelli", "price_monthly_cents": 500_000}
        assert build_fingerprint(rooms=2, **base) != build_fingerprint(rooms=3, **base)


def test_disambiguated_fingerprint() -> None:
    assert disambiguated_fingerprint("monaco|p:0", "CIM", "abc-1") == "monaco|p:0|url:CIM:abc-1"


def test_disambiguated_fingerprint_differs_per_website() -> None:
    assert disambiguated_fingerprint("fp", "CIM", "124") != disambiguated_fingerprint(
        "fp", "MCRE", "124"
    )
