"""Monaco rentals: resolve scraped listings from several agencies into canonical records."""

__version__ = "0.1.0"
