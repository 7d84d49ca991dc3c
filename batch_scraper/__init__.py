"""Batch ASIN scraping job controller."""

__version__ = "0.1.0"
