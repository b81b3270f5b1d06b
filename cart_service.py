"""
Cart totals computation.

Carts live in the browser; every request resends its line items and the
totals are recomputed from the live, active catalog.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pymongo.database import Database

from database import serialize_id, to_object_id
from errors import InvalidProductsError
from schemas import Product

# Category ids are ObjectId hex strings; this key can never be one of them.
NO_CATEGORY_KEY = "no-category:" + uuid.uuid5(uuid.NAMESPACE_URL, "comptamatch/no-category").hex


@dataclass
class CartLineItem:
    product_id: str
    quantity: int = 1


@dataclass
class CartComputation:
    total_cents: int
    totals_by_category: Dict[str, int]
    product_map: Dict[str, Product] = field(default_factory=dict)
    normalized_items: List[CartLineItem] = field(default_factory=list)


def category_key(category_id: Optional[str]) -> str:
    return category_id if category_id else NO_CATEGORY_KEY


def _parse_quantity(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1


def normalize_items(items: Iterable[Dict[str, Any]]) -> List[CartLineItem]:
    return [
        CartLineItem(
            product_id=str(raw.get("productId", raw.get("product_id"))),
            quantity=_parse_quantity(raw.get("quantity")),
        )
        for raw in items
    ]


def fetch_active_products(db: Database, product_ids: Iterable[str]) -> Dict[str, Product]:
    object_ids = []
    for pid in dict.fromkeys(product_ids):
        oid = to_object_id(pid)
        if oid is not None:
            object_ids.append(oid)
    docs = db["product"].find({"_id": {"$in": object_ids}, "is_active": True})
    products = [Product(**serialize_id(doc)) for doc in docs]
    return {p.id: p for p in products}


def compute_cart_totals(db: Database, items: Iterable[Dict[str, Any]]) -> CartComputation:
    normalized = normalize_items(items)
    product_map = fetch_active_products(db, (it.product_id for it in normalized))

    # duplicate line items for one product fail here too
    if len(product_map) != len(normalized):
        raise InvalidProductsError()

    totals_by_category: Dict[str, int] = {}
    for item in normalized:
        product = product_map[item.product_id]
        key = category_key(product.category_id)
        totals_by_category[key] = totals_by_category.get(key, 0) + product.price_cents * item.quantity

    return CartComputation(
        total_cents=sum(totals_by_category.values()),
        totals_by_category=totals_by_category,
        product_map=product_map,
        normalized_items=normalized,
    )
