# services/pricing.py
"""
Server-side order valuation. Client-supplied prices are never read: every
amount comes from the stored Product rows.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Sequence

from db import db
from errors import BadRequest, EmptyOrder, OutOfStock
from models.product import Product

MINOR_UNIT_FACTOR = 100  # cents per currency unit


@dataclass(frozen=True)
class Quote:
    total: Decimal
    products: List[Product]

    @property
    def amount_minor(self) -> int:
        return int((self.total * MINOR_UNIT_FACTOR).to_integral_value())

    @property
    def product_ids(self) -> List[int]:
        return [p.id for p in self.products]


def parse_item_ids(items: Any) -> List[int]:
    """``[{"id": 3}, {"id": "4"}]`` -> ``[3, 4]``. Any other price/qty fields are ignored."""
    if not isinstance(items, list):
        raise BadRequest("items must be a list")

    ids: List[int] = []
    for item in items:
        raw = item.get("id") if isinstance(item, dict) else None
        if isinstance(raw, bool):
            raw = None
        try:
            ids.append(int(str(raw).strip()))
        except (TypeError, ValueError):
            raise BadRequest("Each item needs a numeric id")
    return ids


def quote_items(item_ids: Sequence[int]) -> Quote:
    """
    Price the requested products from the catalog.
    Unknown ids are skipped; the first unavailable product aborts the quote.
    """
    total = Decimal("0")
    resolved: List[Product] = []
    wanted = Counter(item_ids)

    for pid in item_ids:
        product = db.session.get(Product, pid)
        if product is None:
            continue
        if product.is_sold or product.quantity <= 0 or wanted[pid] > product.quantity:
            raise OutOfStock(f"Product {product.name} is out of stock")
        total += Decimal(product.price)
        resolved.append(product)

    if total <= 0:
        raise EmptyOrder()

    return Quote(total=total, products=resolved)
