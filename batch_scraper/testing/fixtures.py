"""Demo product fixtures for mock mode.

These fixtures provide product records without contacting the upstream
site. Used when APP_FETCHER_MOCK=true and by the test suite.
"""

from typing import Any, Dict

from batch_scraper.models.product import ProductData

DEMO_PRODUCTS: Dict[str, Dict[str, Any]] = {
    "B08N5WRWNW": {
        "title": "Echo Dot (4th Gen) Smart speaker with Alexa - Charcoal",
        "price": 49.99,
        "currency": "USD",
        "in_stock": True,
        "images": ["https://m.media-amazon.com/images/I/714Rq4k05UL._AC_SL1000_.jpg"],
    },
    "B07FZ8S74R": {
        "title": "Echo Dot (3rd Gen) Smart speaker with Alexa - Charcoal",
        "price": 39.99,
        "currency": "USD",
        "in_stock": False,
        "images": ["https://m.media-amazon.com/images/I/6182S7MYC2L._AC_SL1000_.jpg"],
    },
    "B09B8V1LZ3": {
        "title": "Echo Show 5 (2nd Gen) Smart display with Alexa",
        "price": 84.99,
        "currency": "USD",
        "in_stock": True,
        "images": [],
    },
}


def get_demo_product(asin: str) -> ProductData:
    """Get demo product data for an ASIN.

    Unknown ASINs get a generic in-stock product so any valid ASIN succeeds.

    Args:
        asin: Normalized ASIN.

    Returns:
        ProductData for the ASIN.
    """
    data = DEMO_PRODUCTS.get(asin, {"title": f"Demo product {asin}", "in_stock": True})
    return ProductData(
        asin=asin,
        title=data["title"],
        url=f"https://www.amazon.com/dp/{asin}",
        price=data.get("price"),
        currency=data.get("currency"),
        in_stock=data.get("in_stock", True),
        images=list(data.get("images", [])),
    )
