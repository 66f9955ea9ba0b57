"""Reference-code normalization and content fingerprinting.

Reference codes are compared across agencies, which format the same code
differently:

- "ACL_2P_Chateau_Azur_9" vs "rif ACL_2P_Chateau_Azur_"
- "RIF WL VILLA ANTOINETTE" vs "WL_VILLA_ANTOINETTE"

Fingerprints are the fallback dedup key when no usable reference code exists.
"""

import math
import re
import unicodedata
from typing import Final

# Fingerprint price bucket (5 EUR)
FINGERPRINT_PRICE_BUCKET_CENTS: Final = 500

_RIF_PREFIX: Final = re.compile(r"^RIF\s+")
_SEPARATORS: Final = re.compile(r"[_\s]+")
_TRAILING_UNDERSCORES: Final = re.compile(r"_+$")
_TRAILING_SEQUENCE: Final = re.compile(r"_[0-9]+$")
_NON_WORD: Final = re.compile(r"[^\w\s]", re.ASCII)
_WHITESPACE: Final = re.compile(r"\s+")


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (``round`` rounds half to even)."""
    return math.floor(value + 0.5)


def normalize_reference(raw: str | None) -> str | None:
    """Normalize an agency reference code so different sites compare equal.

    Args:
        raw: Reference text as scraped, possibly None or empty.

    Returns:
        Upper-case code with a leading "RIF " removed, whitespace and
        underscore runs collapsed to one underscore and trailing underscores
        stripped, or None when nothing remains.
    """
    if not raw:
        return None

    code = raw.strip().upper()
    code = _RIF_PREFIX.sub("", code)
    code = _SEPARATORS.sub("_", code)
    code = _TRAILING_UNDERSCORES.sub("", code)
    code = code.strip()
    return code or None


def reference_base_prefix(code: str) -> str:
    """Strip a trailing "_<digits>" sequence number from a normalized code.

    "ACL_2P_CHATEAU_AZUR_9" -> "ACL_2P_CHATEAU_AZUR"
    """
    return _TRAILING_UNDERSCORES.sub("", _TRAILING_SEQUENCE.sub("", code))


def _clean_text(value: str | None) -> str:
    """Lower-case, strip accents and punctuation, hyphenate whitespace."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _NON_WORD.sub("", stripped)
    return _WHITESPACE.sub("-", stripped.strip())


def _format_number(value: float | int | None) -> str:
    """Render a numeric fingerprint part; missing and zero both become "0"."""
    if not value:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def round_price_bucket(price_cents: int) -> int:
    """Round a price in cents to the nearest fingerprint bucket (halves round up)."""
    half = FINGERPRINT_PRICE_BUCKET_CENTS // 2
    return (price_cents + half) // FINGERPRINT_PRICE_BUCKET_CENTS * FINGERPRINT_PRICE_BUCKET_CENTS


def build_fingerprint(
    *,
    city: str,
    price_monthly_cents: int,
    district: str | None = None,
    building_name: str | None = None,
    living_area_sqm: float | None = None,
    terrace_area_sqm: float | None = None,
    bedrooms: int | None = None,
    rooms: int | None = None,
) -> str:
    """Build a content fingerprint for listings without a usable reference code.

    Empty text parts are left out of the key, so a listing without a
    district fingerprints as ``city|building|liv:...`` rather than carrying
    an empty segment.

    Returns:
        ``city|district|building|liv:<v>|terr:<v>|bed:<v>|rooms:<v>|p:<bucket>``
    """
    parts = [
        _clean_text(city),
        _clean_text(district),
        _clean_text(building_name),
        f"liv:{_format_number(living_area_sqm)}",
        f"terr:{_format_number(terrace_area_sqm)}",
        f"bed:{_format_number(bedrooms)}",
        f"rooms:{_format_number(rooms)}",
        f"p:{round_price_bucket(price_monthly_cents)}",
    ]
    return "|".join(part for part in parts if part)


def disambiguated_fingerprint(
    fingerprint: str, source_website_code: str, source_listing_id: str
) -> str:
    """Fingerprint variant used when the plain one belongs to a different unit.

    Source listing ids are only unique per website, so the website code is
    part of the suffix.
    """
    return f"{fingerprint}|url:{source_website_code}:{source_listing_id}"
