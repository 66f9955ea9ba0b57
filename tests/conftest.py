"""Shared pytest fixtures."""

import gc
import os
import warnings
from collections.abc import AsyncGenerator, Callable, Iterator
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio
import structlog
from hypothesis import HealthCheck, settings

from monaco_rentals.config import Settings
from monaco_rentals.db import ListingStorage
from monaco_rentals.maintenance import seed_source_websites
from monaco_rentals.models import ContractType, ParsedListing, PropertyType

# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=10)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file from leaking into test Settings instances."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Drop structlog configuration and bound context a test may leave behind."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _stop_leaked_connections() -> Iterator[None]:
    """Stop aiosqlite connections a test forgot to close; their worker threads block exit."""
    yield
    gc.collect()
    leaked = [
        obj
        for obj in gc.get_objects()
        if isinstance(obj, aiosqlite.Connection) and obj._connection is not None
    ]
    for conn in leaked:
        conn.stop()
    if leaked:
        warnings.warn(
            f"{len(leaked)} aiosqlite connection(s) left open, close the storage in the test",
            ResourceWarning,
            stacklevel=1,
        )


@pytest_asyncio.fixture
async def storage() -> AsyncGenerator[ListingStorage, None]:
    """In-memory storage with the default source websites seeded."""
    storage = ListingStorage(":memory:")
    await storage.initialize()
    await seed_source_websites(storage)
    yield storage
    await storage.close()


@pytest.fixture
def make_record() -> Callable[..., ParsedListing]:
    """Factory for ParsedListing instances with sensible defaults and auto-incrementing IDs.

    Defaults describe a 3-room flat in Monte-Carlo at 8500 EUR/month.
    """
    _counter = 0

    def _make(
        source_website_code: str = "CIM",
        price_monthly_cents: int = 850_000,
        total_area_sqm: float | None = 100.0,
        rooms: int | None = 3,
        **overrides: Any,
    ) -> ParsedListing:
        nonlocal _counter
        _counter += 1
        source_listing_id = overrides.pop("source_listing_id", f"test-{_counter}")
        defaults: dict[str, Any] = {
            "source_website_code": source_website_code,
            "source_listing_id": source_listing_id,
            "url": f"https://example.com/{source_website_code.lower()}/{source_listing_id}",
            "title": f"Test Listing {_counter}",
            "city": "Monaco",
            "district": "Monte-Carlo",
            "building_name": "Le Millefiori",
            "contract_type": ContractType.RENT,
            "property_type": PropertyType.APARTMENT,
            "price_monthly_cents": price_monthly_cents,
            "total_area_sqm": total_area_sqm,
            "rooms": rooms,
        }
        defaults.update(overrides)
        return ParsedListing(**defaults)

    return _make
