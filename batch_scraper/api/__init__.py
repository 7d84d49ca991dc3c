"""API endpoints."""

from batch_scraper.api import health, metrics, scraper

__all__ = [
    "health",
    "metrics",
    "scraper",
]
