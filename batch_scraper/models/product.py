"""Product data returned by fetchers."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass
class ProductData:
    """Minimal product record resolved from one ASIN."""

    asin: str
    title: str
    url: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    in_stock: bool = True
    images: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asin": self.asin,
            "title": self.title,
            "url": self.url,
            "price": self.price,
            "currency": self.currency,
            "in_stock": self.in_stock,
            "images": list(self.images),
            "extra": dict(self.extra),
            "fetched_at": self.fetched_at.isoformat(),
        }
