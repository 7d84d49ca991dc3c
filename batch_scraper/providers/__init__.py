"""Product fetcher implementations."""

from batch_scraper.providers.amazon import AmazonFetcher
from batch_scraper.providers.base import Fetcher
from batch_scraper.providers.exceptions import (
    AuthFailureError,
    FetchError,
    FetchErrorKind,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitedError,
)

__all__ = [
    "Fetcher",
    "AmazonFetcher",
    "FetchError",
    "FetchErrorKind",
    "NotFoundError",
    "RateLimitedError",
    "AuthFailureError",
    "NetworkError",
    "ParseError",
]
