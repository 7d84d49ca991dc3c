"""Scripted fetcher for mock mode and tests.

Each ASIN can be given a sequence of outcomes (ProductData to return or a
FetchError to raise). The last outcome repeats once the script runs out;
unscripted ASINs resolve to demo products.
"""

import asyncio
from collections import Counter
from typing import Awaitable, Callable, Dict, List, Optional, Union

import structlog

from batch_scraper.models.product import ProductData
from batch_scraper.providers.base import Fetcher
from batch_scraper.testing.fixtures import get_demo_product

logger = structlog.get_logger(__name__)

Outcome = Union[ProductData, Exception]
FetchHook = Callable[[str], Awaitable[None]]


class MockFetcher(Fetcher):
    """Fetcher that never touches the network.

    Attributes:
        calls: ASINs in the order fetch() was called.
    """

    name = "mock"

    def __init__(
        self,
        outcomes: Optional[Dict[str, List[Outcome]]] = None,
        delay: float = 0.0,
        on_fetch: Optional[FetchHook] = None,
    ) -> None:
        """Initialize the mock fetcher.

        Args:
            outcomes: Scripted outcomes per ASIN.
            delay: Seconds each fetch takes.
            on_fetch: Coroutine called with the ASIN at the start of each fetch.
        """
        self._outcomes: Dict[str, List[Outcome]] = {
            asin: list(script) for asin, script in (outcomes or {}).items()
        }
        self.delay = delay
        self.on_fetch = on_fetch
        self.calls: List[str] = []
        self.closed = False

    def script(self, asin: str, *outcomes: Outcome) -> None:
        """Replace the scripted outcomes for one ASIN."""
        self._outcomes[asin] = list(outcomes)

    def call_count(self, asin: str) -> int:
        return Counter(self.calls)[asin]

    async def fetch(self, asin: str, timeout: float) -> ProductData:
        self.calls.append(asin)
        logger.debug("mock_fetch", asin=asin)

        if self.on_fetch is not None:
            await self.on_fetch(asin)
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)

        script = self._outcomes.get(asin)
        if not script:
            return get_demo_product(asin)

        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True
