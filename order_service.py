"""
Order creation and payment finalization.

Checkout freezes the cart computation into a PENDING order. The payment
step (webhook or admin) calls ``mark_order_paid``, which is the only place
a promo code's ``current_uses`` goes up.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from cart_service import compute_cart_totals
from database import create_document, serialize_id, to_naive_utc, to_object_id, utc_now
from errors import OrderNotFoundError
from logging_setup import get_logger
from promo_service import PRODUCT_CONTEXT, validate_promo_code_for_total
from schemas import Order, OrderItem, OrderStatus

logger = get_logger("orders")


def create_pending_order(
    db: Database,
    user_id: Optional[str],
    items: Iterable[Dict[str, Any]],
    raw_code: Optional[str] = None,
    currency: str = "eur",
    now: Optional[datetime] = None,
) -> Order:
    cart = compute_cart_totals(db, items)
    promo = None
    if raw_code:
        promo = validate_promo_code_for_total(
            db,
            raw_code,
            cart.total_cents,
            context=PRODUCT_CONTEXT,
            category_totals=cart.totals_by_category,
            now=now,
        )
    discount = promo.discount_cents if promo else 0

    order_items = []
    for item in cart.normalized_items:
        product = cart.product_map[item.product_id]
        order_items.append(
            OrderItem(
                product_id=item.product_id,
                product_name_snapshot=product.name,
                unit_price_cents=product.price_cents,
                quantity=item.quantity,
                line_total=product.price_cents * item.quantity,
            )
        )

    order = Order(
        user_id=user_id,
        status=OrderStatus.PENDING,
        total_before_discount=cart.total_cents,
        discount_amount=discount,
        total_paid=max(cart.total_cents - discount, 0),
        currency=currency,
        promo_code_id=promo.promo.id if promo else None,
        items=order_items,
    )
    order.id = create_document(db, "order", order)
    logger.info("order %s created total=%s discount=%s", order.id, order.total_paid, discount)
    return order


def mark_order_paid(
    db: Database,
    order_id: str,
    paid_at: Optional[datetime] = None,
    stripe_fee_amount: Optional[int] = None,
) -> Order:
    oid = to_object_id(order_id)
    if oid is None:
        raise OrderNotFoundError(order_id)

    update: Dict[str, Any] = {
        "status": OrderStatus.PAID.value,
        "paid_at": to_naive_utc(paid_at) or utc_now(),
        "updated_at": utc_now(),
    }
    if stripe_fee_amount is not None:
        update["stripe_fee_amount"] = stripe_fee_amount

    # only the transition out of a non-PAID status counts a promo use
    previous = db["order"].find_one_and_update(
        {"_id": oid, "status": {"$ne": OrderStatus.PAID.value}},
        {"$set": update},
        return_document=ReturnDocument.BEFORE,
    )
    if previous is None:
        existing = db["order"].find_one({"_id": oid})
        if existing is None:
            raise OrderNotFoundError(order_id)
        logger.info("order %s already paid", order_id)
        return Order(**serialize_id(existing))

    promo_oid = to_object_id(previous.get("promo_code_id"))
    if promo_oid is not None and (previous.get("discount_amount") or 0) > 0:
        db["promocode"].update_one({"_id": promo_oid}, {"$inc": {"current_uses": 1}})
        logger.info("promo %s usage incremented by order %s", previous["promo_code_id"], order_id)

    paid = db["order"].find_one({"_id": oid})
    return Order(**serialize_id(paid))
