"""Amazon product page fetcher.

Performs one page request per ASIN with a rotating User-Agent and maps the
response onto the FetchError taxonomy. Only the fields the batch controller
needs are extracted; detailed product parsing lives elsewhere.
"""

import html
import random
import re
import time
from typing import Dict, List, Optional

import httpx
import structlog

from batch_scraper.models.product import ProductData
from batch_scraper.providers.base import Fetcher
from batch_scraper.providers.exceptions import (
    AuthFailureError,
    NetworkError,
    NotFoundError,
    ParseError,
    RateLimitedError,
)

logger = structlog.get_logger(__name__)


class AmazonFetcher(Fetcher):
    """Fetch product pages from an Amazon storefront."""

    name = "amazon"

    DEFAULT_USER_AGENTS: List[str] = [
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.1 Safari/605.1.15",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ]

    BASE_HEADERS: Dict[str, str] = {
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Upgrade-Insecure-Requests": "1",
        "Cache-Control": "max-age=0",
    }

    BOT_CHECK_MARKERS = ("captcha", "robot check", "automated access")

    TITLE_PATTERN = re.compile(r'<span[^>]*id="productTitle"[^>]*>(.*?)</span>', re.S | re.I)
    PRICE_PATTERN = re.compile(r'<span class="a-offscreen">\s*\$([0-9][0-9,]*\.?[0-9]*)')
    IMAGE_PATTERN = re.compile(r'"hiRes":"(https://[^"]+)"')
    UNAVAILABLE_MARKERS = ("currently unavailable", "out of stock")

    def __init__(
        self,
        base_url: str = "https://www.amazon.com/dp/",
        user_agents: Optional[List[str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the Amazon fetcher.

        Args:
            base_url: Product page prefix the ASIN is appended to
            user_agents: User-Agent pool rotated per request
            client: Preconfigured client (tests inject a mock transport)
            rng: Random source for User-Agent selection
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.user_agents = user_agents or list(self.DEFAULT_USER_AGENTS)
        self._client = client
        self._owns_client = client is None
        self._rng = rng or random.Random()

        logger.info(
            "amazon_fetcher_initialized",
            base_url=self.base_url,
            user_agent_pool=len(self.user_agents),
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    def product_url(self, asin: str) -> str:
        return f"{self.base_url}{asin}"

    def _headers(self) -> Dict[str, str]:
        headers = dict(self.BASE_HEADERS)
        headers["User-Agent"] = self._rng.choice(self.user_agents)
        return headers

    async def fetch(self, asin: str, timeout: float) -> ProductData:
        url = self.product_url(asin)
        start = time.monotonic()

        try:
            response = await self.client.get(url, headers=self._headers(), timeout=timeout)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Transport error: {e}") from e

        self._raise_for_status(response)
        product = self._parse(asin, url, response.text)

        logger.debug(
            "product_page_fetched",
            asin=asin,
            status_code=response.status_code,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return product

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 404:
            raise NotFoundError("Product page not found (404)")
        if status in (429, 503):
            raise RateLimitedError(f"Rate limited ({status})")
        if status in (401, 407):
            raise AuthFailureError(f"Upstream rejected credentials ({status})")
        if status >= 400:
            raise NetworkError(f"HTTP {status}")

    def _parse(self, asin: str, url: str, body: str) -> ProductData:
        lowered = body.lower()
        if any(marker in lowered for marker in self.BOT_CHECK_MARKERS):
            raise RateLimitedError("Bot check page served")

        match = self.TITLE_PATTERN.search(body)
        if not match:
            raise ParseError("Product title not found")
        title = html.unescape(re.sub(r"\s+", " ", match.group(1))).strip()
        if not title:
            raise ParseError("Product title empty")

        price: Optional[float] = None
        price_match = self.PRICE_PATTERN.search(body)
        if price_match:
            try:
                price = float(price_match.group(1).replace(",", ""))
            except ValueError:
                price = None

        return ProductData(
            asin=asin,
            title=title,
            url=url,
            price=price,
            currency="USD" if price is not None else None,
            in_stock=not any(marker in lowered for marker in self.UNAVAILABLE_MARKERS),
            images=list(dict.fromkeys(self.IMAGE_PATTERN.findall(body)))[:10],
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

