"""
Admin dashboard statistics.

Independent aggregations (sales, customers, product sales, product
interactions, promo usage) run concurrently against MongoDB and are merged
into one ``DashboardStats``. A failure in any of them fails the whole call.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from dashboard_range import (
    DateInterval,
    format_bucket_label,
    get_range_bounds,
    get_timeline_bucket,
    iso_key,
    truncate_to_bucket,
)
from database import to_object_id, utc_now
from logging_setup import get_logger
from schemas import (
    AnalyticsEventType,
    DashboardCustomerStats,
    DashboardProductInteraction,
    DashboardProductSales,
    DashboardProductStats,
    DashboardPromoStats,
    DashboardPromoUsage,
    DashboardSalesStats,
    DashboardSelection,
    DashboardStats,
    OrderStatus,
    RevenuePoint,
    TimelineBucket,
)

logger = get_logger("dashboard")

TOP_PROMO_CODES = 5


def _date_window(bounds: DateInterval) -> Dict[str, datetime]:
    return {"$gte": bounds.from_, "$lte": bounds.to}


def paid_orders_filter(bounds: Optional[DateInterval], excluded_user_ids: List[str]) -> Dict[str, Any]:
    """PAID orders whose effective date (paid_at, else created_at) is in bounds."""
    query: Dict[str, Any] = {"status": OrderStatus.PAID.value}
    if bounds is not None and bounds.from_ is not None:
        window = _date_window(bounds)
        query["$or"] = [
            {"paid_at": window},
            {"paid_at": None, "created_at": window},
        ]
    if excluded_user_ids:
        query["user_id"] = {"$nin": excluded_user_ids}
    return query


def excluded_test_accounts(db: Database) -> List[str]:
    return [str(doc["_id"]) for doc in db["user"].find({"is_test_account": True}, {"_id": 1})]


def _catalog(db: Database) -> List[Dict[str, Any]]:
    return list(db["product"].find({}, {"name": 1}).sort("name", 1))


# Sales

def compute_sales(
    db: Database, bounds: DateInterval, bucket: TimelineBucket, excluded_user_ids: List[str]
) -> DashboardSalesStats:
    orders = db["order"].find(
        paid_orders_filter(bounds, excluded_user_ids),
        {"total_paid": 1, "stripe_fee_amount": 1, "paid_at": 1, "created_at": 1},
    )

    total_revenue = 0
    total_fees = 0
    count = 0
    buckets: Dict[str, Dict[str, Any]] = {}
    for order in orders:
        revenue = order.get("total_paid") or 0
        total_revenue += revenue
        total_fees += order.get("stripe_fee_amount") or 0
        count += 1

        moment = truncate_to_bucket(order.get("paid_at") or order["created_at"], bucket)
        key = iso_key(moment)
        point = buckets.setdefault(key, {"moment": moment, "revenue": 0, "orders_count": 0})
        point["revenue"] += revenue
        point["orders_count"] += 1

    timeline = [
        RevenuePoint(
            label=format_bucket_label(point["moment"], bucket),
            date=key,
            revenue=point["revenue"],
            orders_count=point["orders_count"],
        )
        for key, point in sorted(buckets.items())
    ]
    return DashboardSalesStats(
        total_revenue=total_revenue,
        total_stripe_fees=total_fees,
        net_result=total_revenue - total_fees,
        orders_count=count,
        average_order_value=round(total_revenue / count) if count else 0,
        timeline=timeline,
    )


# Customers

def _distinct_buyers(db: Database, query: Dict[str, Any]) -> int:
    groups = db["order"].aggregate([{"$match": query}, {"$group": {"_id": "$user_id"}}])
    return sum(1 for group in groups if group["_id"] is not None)


def compute_customers(
    db: Database, bounds: DateInterval, excluded_user_ids: List[str]
) -> DashboardCustomerStats:
    users_query: Dict[str, Any] = {"is_test_account": {"$ne": True}} if excluded_user_ids else {}
    total_users = db["user"].count_documents(users_query)
    if bounds.from_ is None:
        new_users = total_users
    else:
        new_users = db["user"].count_documents({**users_query, "created_at": _date_window(bounds)})

    return DashboardCustomerStats(
        total_registered_users=total_users,
        new_users_in_range=new_users,
        customers_with_orders_all_time=_distinct_buyers(db, paid_orders_filter(None, excluded_user_ids)),
        customers_with_orders_in_range=_distinct_buyers(db, paid_orders_filter(bounds, excluded_user_ids)),
        customers_with_subscription_all_time=0,
    )


# Products

def _item_totals(db: Database, query: Dict[str, Any]) -> Dict[str, Dict[str, int]]:
    """Order lines and line_total revenue per product id."""
    pipeline = [
        {"$match": query},
        {"$unwind": "$items"},
        {
            "$group": {
                "_id": "$items.product_id",
                "count": {"$sum": 1},
                "revenue": {"$sum": "$items.line_total"},
            }
        },
    ]
    return {
        str(row["_id"]): {"count": row["count"], "revenue": row.get("revenue") or 0}
        for row in db["order"].aggregate(pipeline)
    }


def compute_product_sales(
    db: Database, bounds: DateInterval, excluded_user_ids: List[str]
) -> List[DashboardProductSales]:
    in_range = _item_totals(db, paid_orders_filter(bounds, excluded_user_ids))
    all_time = _item_totals(db, paid_orders_filter(None, excluded_user_ids))
    empty = {"count": 0, "revenue": 0}
    rows = []
    for product in _catalog(db):
        key = str(product["_id"])
        rows.append(
            DashboardProductSales(
                product_id=key,
                name=product.get("name") or "Produit",
                sales_count_in_range=in_range.get(key, empty)["count"],
                sales_count_all_time=all_time.get(key, empty)["count"],
                revenue_in_range=in_range.get(key, empty)["revenue"],
            )
        )
    return sorted(rows, key=lambda row: row.sales_count_in_range, reverse=True)


def compute_product_interactions(
    db: Database, bounds: DateInterval, excluded_user_ids: List[str]
) -> List[DashboardProductInteraction]:
    match: Dict[str, Any] = {
        "type": {"$in": [AnalyticsEventType.VIEW.value, AnalyticsEventType.ADD_TO_CART.value]},
        "product_id": {"$ne": None},
    }
    if bounds.from_ is not None:
        match["created_at"] = _date_window(bounds)
    if excluded_user_ids:
        match["user_id"] = {"$nin": excluded_user_ids}

    pipeline = [
        {"$match": match},
        {"$group": {"_id": {"product_id": "$product_id", "type": "$type"}, "count": {"$sum": 1}}},
    ]
    per_product: Dict[str, Dict[str, int]] = {}
    for row in db["analyticsevent"].aggregate(pipeline):
        counts = per_product.setdefault(str(row["_id"]["product_id"]), {})
        counts[row["_id"]["type"]] = row["count"]

    rows = []
    for product in _catalog(db):
        counts = per_product.get(str(product["_id"]), {})
        rows.append(
            DashboardProductInteraction(
                product_id=str(product["_id"]),
                name=product.get("name") or "Produit",
                views_in_range=counts.get(AnalyticsEventType.VIEW.value, 0),
                add_to_cart_in_range=counts.get(AnalyticsEventType.ADD_TO_CART.value, 0),
            )
        )
    return sorted(rows, key=lambda row: row.views_in_range, reverse=True)


# Promos

def compute_promos(
    db: Database, bounds: DateInterval, excluded_user_ids: List[str], limit: int = TOP_PROMO_CODES
) -> DashboardPromoStats:
    pipeline = [
        {"$match": paid_orders_filter(bounds, excluded_user_ids)},
        {
            "$group": {
                "_id": "$promo_code_id",
                "usage_count": {"$sum": 1},
                "total_discount_amount": {"$sum": "$discount_amount"},
                "revenue_generated": {"$sum": "$total_paid"},
            }
        },
    ]
    groups = list(db["order"].aggregate(pipeline))
    total_orders = sum(group["usage_count"] for group in groups)
    used = [group for group in groups if group["_id"] is not None]
    orders_with_promo = sum(group["usage_count"] for group in used)

    ids = [oid for oid in (to_object_id(group["_id"]) for group in used) if oid is not None]
    codes = {str(doc["_id"]): doc.get("code") for doc in db["promocode"].find({"_id": {"$in": ids}}, {"code": 1})}

    # orders of deleted promo codes still count towards the usage rate
    top = [
        DashboardPromoUsage(
            promo_code_id=str(group["_id"]),
            code=codes[str(group["_id"])],
            usage_count=group["usage_count"],
            total_discount_amount=group.get("total_discount_amount") or 0,
            revenue_generated=group.get("revenue_generated") or 0,
        )
        for group in used
        if codes.get(str(group["_id"]))
    ]
    top.sort(key=lambda row: (-row.usage_count, row.code))
    return DashboardPromoStats(
        promo_usage_rate=orders_with_promo / total_orders if total_orders else 0.0,
        top_promo_codes=top[:limit],
    )


def get_dashboard_stats(
    db: Database,
    selection: DashboardSelection,
    include_test_account: bool = False,
    now: Optional[datetime] = None,
) -> DashboardStats:
    now = now or utc_now()
    bounds = get_range_bounds(selection.range, selection, now=now)
    bucket = get_timeline_bucket(selection.range)
    excluded = [] if include_test_account else excluded_test_accounts(db)

    logger.debug("dashboard stats range=%s from=%s to=%s", selection.range.value, bounds.from_, bounds.to)

    with ThreadPoolExecutor(max_workers=5) as pool:
        sales = pool.submit(compute_sales, db, bounds, bucket, excluded)
        customers = pool.submit(compute_customers, db, bounds, excluded)
        product_sales = pool.submit(compute_product_sales, db, bounds, excluded)
        interactions = pool.submit(compute_product_interactions, db, bounds, excluded)
        promos = pool.submit(compute_promos, db, bounds, excluded)

        return DashboardStats(
            range=selection.range,
            generated_at=iso_key(now),
            from_=iso_key(bounds.from_) if bounds.from_ else None,
            to=iso_key(bounds.to) if bounds.to else None,
            bucket=bucket,
            sales=sales.result(),
            customers=customers.result(),
            products=DashboardProductStats(
                sales=product_sales.result(),
                interactions=interactions.result(),
            ),
            promos=promos.result(),
        )
