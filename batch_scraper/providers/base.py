"""Abstract base class for product fetchers."""

from abc import ABC, abstractmethod

from batch_scraper.models.product import ProductData


class Fetcher(ABC):
    """Resolves one ASIN to product data."""

    name: str = "fetcher"

    @abstractmethod
    async def fetch(self, asin: str, timeout: float) -> ProductData:
        """
        Fetch product data for a single ASIN.

        Args:
            asin: Normalized ASIN
            timeout: Seconds allowed for the whole lookup

        Returns:
            ProductData for the ASIN

        Raises:
            FetchError: With a kind describing the failure
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None
