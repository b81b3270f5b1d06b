"""
Promo code validation and discount calculation.

``validate_promo_code_for_total`` answers "does this code apply to this
cart, and for how much?". A code that does not apply is an expected outcome
and yields ``None``; nothing here raises for business reasons.

Usage counters are read but never written: ``current_uses`` is incremented
by ``order_service.mark_order_paid`` once the order is actually paid.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from pydantic import ValidationError
from pymongo.database import Database

from cart_service import compute_cart_totals
from database import serialize_id, utc_now
from logging_setup import get_logger
from schemas import DiscountType, PromoCode, TargetType

logger = get_logger("promo")

PRODUCT_CONTEXT = "PRODUCT"
SUBSCRIPTION_CONTEXT = "SUBSCRIPTION"


@dataclass
class PromoApplication:
    promo: PromoCode
    discount_cents: int


def canonical_code(raw_code: Optional[str]) -> str:
    return (raw_code or "").strip().upper()


def find_promo(db: Database, code: str) -> Optional[PromoCode]:
    doc = db["promocode"].find_one({"code": code})
    if doc is None:
        return None
    try:
        return PromoCode(**serialize_id(doc))
    except ValidationError as e:
        logger.warning("promo %s has an unreadable document: %s", code, e)
        return None


def _eligible_base(promo: PromoCode, total_cents: int, category_totals: Dict[str, int]) -> int:
    if promo.target_type == TargetType.ALL:
        return total_cents
    if promo.product_category_id:
        return category_totals.get(promo.product_category_id, 0)
    # unscoped PRODUCT promos cover the whole cart, unscoped CATEGORY promos nothing
    return total_cents if promo.target_type == TargetType.PRODUCT else 0


def _compute_discount(promo: PromoCode, eligible_base: int) -> int:
    if promo.discount_type == DiscountType.PERCENT:
        return (eligible_base * promo.discount_value) // 100
    if promo.discount_type == DiscountType.AMOUNT:
        return promo.discount_value
    return 0


def _reject(code: str, reason: str) -> None:
    logger.debug("promo %s rejected: %s", code or "<blank>", reason)
    return None


def validate_promo_code_for_total(
    db: Database,
    raw_code: Optional[str],
    total_cents: int,
    context: str = PRODUCT_CONTEXT,
    category_totals: Optional[Dict[str, int]] = None,
    now: Optional[datetime] = None,
) -> Optional[PromoApplication]:
    code = canonical_code(raw_code)
    if not code or total_cents <= 0:
        return _reject(code, "blank code or empty total")

    promo = find_promo(db, code)
    if promo is None or not promo.is_active:
        return _reject(code, "unknown or inactive")

    if promo.target_type in (TargetType.PRODUCT, TargetType.CATEGORY) and context != PRODUCT_CONTEXT:
        return _reject(code, f"{promo.target_type.value} promo outside product cart")

    now = now or utc_now()
    if promo.starts_at and promo.starts_at > now:
        return _reject(code, "not started")
    if promo.ends_at and promo.ends_at < now:
        return _reject(code, "expired")

    if promo.max_uses is not None and promo.max_uses > 0 and promo.current_uses >= promo.max_uses:
        return _reject(code, "usage cap reached")

    eligible_base = _eligible_base(promo, total_cents, category_totals or {})
    if eligible_base <= 0:
        return _reject(code, "nothing eligible in cart")

    discount_cents = _compute_discount(promo, eligible_base)
    if discount_cents <= 0:
        return _reject(code, "no discount")

    return PromoApplication(promo=promo, discount_cents=min(discount_cents, total_cents))


def apply_promo_to_cart(
    db: Database,
    items: Iterable[Dict[str, Any]],
    raw_code: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    cart = compute_cart_totals(db, items)
    result = validate_promo_code_for_total(
        db,
        raw_code,
        cart.total_cents,
        context=PRODUCT_CONTEXT,
        category_totals=cart.totals_by_category,
        now=now,
    )
    if result is None:
        return None
    return {
        "code": result.promo.code,
        "discount_amount": result.discount_cents,
        "new_total": max(cart.total_cents - result.discount_cents, 0),
    }
