"""Pure helper functions shared across the package."""
