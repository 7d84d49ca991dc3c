"""Testing module for mock fetcher support."""

from batch_scraper.testing.fixtures import DEMO_PRODUCTS, get_demo_product
from batch_scraper.testing.mock_fetcher import MockFetcher

__all__ = ["DEMO_PRODUCTS", "get_demo_product", "MockFetcher"]
