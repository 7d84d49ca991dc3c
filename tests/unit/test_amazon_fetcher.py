"""Tests for the Amazon product page fetcher"""

import random
from typing import Callable, List

import httpx
import pytest

from batch_scraper.providers.amazon import AmazonFetcher
from batch_scraper.providers.exceptions import FetchError, FetchErrorKind

PRODUCT_PAGE = """
<html><body>
<span id="productTitle" class="a-size-large">
    Echo Dot &amp; Speaker
</span>
<span class="a-offscreen">$1,049.99</span>
<script>var data = {"hiRes":"https://m.media-amazon.com/images/I/a.jpg","hiRes":"https://m.media-amazon.com/images/I/a.jpg"};</script>
</body></html>
"""


def _fetcher(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> AmazonFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AmazonFetcher(client=client, **kwargs)


class TestAmazonFetcherParsing:
    """Tests for product page parsing"""

    @pytest.mark.asyncio
    async def test_parses_product_page(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200, text=PRODUCT_PAGE))

        product = await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert product.asin == "B08N5WRWNW"
        assert product.title == "Echo Dot & Speaker"
        assert product.price == 1049.99
        assert product.currency == "USD"
        assert product.in_stock is True
        assert product.url == "https://www.amazon.com/dp/B08N5WRWNW"
        assert product.images == ["https://m.media-amazon.com/images/I/a.jpg"]

    @pytest.mark.asyncio
    async def test_out_of_stock_page(self) -> None:
        page = PRODUCT_PAGE + "<div id='availability'>Currently unavailable.</div>"
        fetcher = _fetcher(lambda request: httpx.Response(200, text=page))

        product = await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert product.in_stock is False

    @pytest.mark.asyncio
    async def test_missing_title_is_parse_error(self) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(200, text="<html></html>"))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert exc_info.value.kind == FetchErrorKind.PARSE
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_bot_check_is_rate_limited(self) -> None:
        page = "<html><form action='/errors/validateCaptcha'>Robot Check</form></html>"
        fetcher = _fetcher(lambda request: httpx.Response(200, text=page))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert exc_info.value.kind == FetchErrorKind.RATE_LIMITED
        assert exc_info.value.retryable


class TestAmazonFetcherStatusMapping:
    """Tests for HTTP status to error kind mapping"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,kind,retryable,systemic",
        [
            (404, FetchErrorKind.NOT_FOUND, False, False),
            (429, FetchErrorKind.RATE_LIMITED, True, False),
            (503, FetchErrorKind.RATE_LIMITED, True, False),
            (407, FetchErrorKind.AUTH_FAILURE, False, True),
            (500, FetchErrorKind.NETWORK, True, False),
        ],
    )
    async def test_status_codes(
        self,
        status: int,
        kind: FetchErrorKind,
        retryable: bool,
        systemic: bool,
    ) -> None:
        fetcher = _fetcher(lambda request: httpx.Response(status, text=""))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert exc_info.value.kind == kind
        assert exc_info.value.retryable is retryable
        assert exc_info.value.systemic is systemic

    @pytest.mark.asyncio
    async def test_transport_error_is_network(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = _fetcher(handler)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert exc_info.value.kind == FetchErrorKind.NETWORK

    @pytest.mark.asyncio
    async def test_timeout_is_network(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = _fetcher(handler)

        with pytest.raises(FetchError, match="Timed out") as exc_info:
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert exc_info.value.kind == FetchErrorKind.NETWORK


class TestAmazonFetcherRequests:
    """Tests for outgoing requests"""

    @pytest.mark.asyncio
    async def test_rotates_user_agent_from_pool(self) -> None:
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["User-Agent"])
            return httpx.Response(200, text=PRODUCT_PAGE)

        fetcher = _fetcher(handler, user_agents=["agent-a", "agent-b"], rng=random.Random(1))

        for _ in range(10):
            await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert set(seen) <= {"agent-a", "agent-b"}
        assert len(seen) == 10

    @pytest.mark.asyncio
    async def test_base_url_gets_trailing_slash(self) -> None:
        urls: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, text=PRODUCT_PAGE)

        fetcher = _fetcher(handler, base_url="https://example.test/dp")

        await fetcher.fetch("B08N5WRWNW", timeout=5)

        assert urls == ["https://example.test/dp/B08N5WRWNW"]

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        fetcher = AmazonFetcher(client=client)

        await fetcher.close()

        assert not client.is_closed
        await client.aclose()
