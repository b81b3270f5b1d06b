"""
Database Schemas for the ComptaMatch storefront

Each collection model maps to a MongoDB collection. The collection name is the
lowercase of the class name.

- User -> "user"
- Product -> "product"
- PromoCode -> "promocode"
- Order -> "order" (order items are embedded)
- AnalyticsEvent -> "analyticsevent"

The HTTP models at the bottom speak the camelCase the SPA sends and expects.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class TargetType(str, Enum):
    ALL = "ALL"
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"


class DiscountType(str, Enum):
    PERCENT = "PERCENT"
    AMOUNT = "AMOUNT"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


class AnalyticsEventType(str, Enum):
    VIEW = "view"
    ADD_TO_CART = "add_to_cart"


class DashboardRange(str, Enum):
    ALL = "all"
    YEAR = "year"
    MONTH = "month"
    WEEK = "week"
    DAY = "day"


class TimelineBucket(str, Enum):
    YEAR = "year"
    MONTH = "month"
    DAY = "day"
    HOUR = "hour"


def _enum_text(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().upper()


class CamelModel(BaseModel):
    """snake_case in MongoDB, camelCase over HTTP (model_dump(by_alias=True))."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Collections

class User(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    is_active: bool = Field(True, description="Whether user is active")
    is_test_account: bool = Field(False, description="Excluded from dashboard stats by default")


class Product(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., description="Product name")
    description: Optional[str] = Field(None, description="Product description")
    price_cents: int = Field(..., ge=0, description="Price in euro cents")
    category_id: Optional[str] = Field(None, description="Downloadable category id")
    image_url: Optional[str] = Field(None, description="Image URL")
    is_active: bool = Field(True, description="Whether product can be sold")


class PromoCode(CamelModel):
    id: Optional[str] = None
    code: str = Field(..., description="Canonical code, trimmed and uppercase")
    description: Optional[str] = None
    is_active: bool = True
    target_type: TargetType = TargetType.ALL
    product_category_id: Optional[str] = None
    discount_type: Optional[DiscountType] = Field(None, description="None when stored value is unknown")
    discount_value: int = Field(0, description="Percent (0-100) or amount in cents")
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int = 0

    @field_validator("target_type", mode="before")
    @classmethod
    def _known_target_type(cls, value: Any) -> TargetType:
        # corrupt or legacy values ("SUBSCRIPTION", None, ...) behave like ALL
        try:
            return TargetType(_enum_text(value))
        except ValueError:
            return TargetType.ALL

    @field_validator("discount_type", mode="before")
    @classmethod
    def _known_discount_type(cls, value: Any) -> Optional[DiscountType]:
        try:
            return DiscountType(_enum_text(value))
        except ValueError:
            return None

    @field_validator("discount_value", "current_uses", mode="before")
    @classmethod
    def _whole_number(cls, value: Any) -> int:
        # null, "abc", 12.5 -> 0, 0, 12
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0

    @field_validator("max_uses", mode="before")
    @classmethod
    def _usage_cap(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return None


class OrderItem(CamelModel):
    product_id: str
    product_name_snapshot: str
    unit_price_cents: int
    quantity: int = Field(1, ge=1)
    line_total: int


class Order(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    paid_at: Optional[datetime] = None
    total_before_discount: int = 0
    discount_amount: int = 0
    total_paid: int = 0
    stripe_fee_amount: Optional[int] = None
    currency: str = "eur"
    promo_code_id: Optional[str] = None
    items: List[OrderItem] = []


class AnalyticsEvent(BaseModel):
    type: AnalyticsEventType
    product_id: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None


# HTTP payloads

class CartRequest(CamelModel):
    # left loose on purpose: malformed carts and codes get an errorCode, not a 422
    items: Optional[Any] = None
    code: Optional[Any] = None


class CheckoutRequest(CamelModel):
    user_id: str
    items: Optional[Any] = None
    code: Optional[str] = None


class TrackEventRequest(CamelModel):
    type: Optional[str] = None
    product_id: Optional[str] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None


class MarkPaidRequest(CamelModel):
    paid_at: Optional[datetime] = None
    stripe_fee_amount: Optional[int] = Field(None, ge=0)


class PromoCodePayload(CamelModel):
    code: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[float] = None
    max_uses: Optional[int] = None
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    target_type: Optional[str] = None
    product_category_id: Optional[str] = None


class ProductCreate(CamelModel):
    name: str
    description: Optional[str] = None
    price_cents: int = Field(..., ge=0)
    category_id: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


# Dashboard

class DashboardSelection(BaseModel):
    range: DashboardRange = DashboardRange.MONTH
    year: Optional[int] = None
    month: Optional[int] = Field(None, ge=1, le=12)
    week_start: Optional[date] = None
    day: Optional[date] = None


class RevenuePoint(CamelModel):
    label: str
    date: str
    revenue: int
    orders_count: int


class DashboardSalesStats(CamelModel):
    total_revenue: int
    total_stripe_fees: int
    net_result: int
    orders_count: int
    average_order_value: int = 0
    timeline: List[RevenuePoint]


class DashboardCustomerStats(CamelModel):
    total_registered_users: int
    new_users_in_range: int
    customers_with_orders_all_time: int
    customers_with_orders_in_range: int
    customers_with_subscription_all_time: int = 0


class DashboardProductSales(CamelModel):
    product_id: str
    name: str
    type: str = "downloadable"
    sales_count_in_range: int
    sales_count_all_time: int
    revenue_in_range: int = 0


class DashboardProductInteraction(CamelModel):
    product_id: str
    name: str
    views_in_range: int
    add_to_cart_in_range: int


class DashboardProductStats(CamelModel):
    sales: List[DashboardProductSales]
    interactions: List[DashboardProductInteraction]


class DashboardPromoUsage(CamelModel):
    promo_code_id: str
    code: str
    usage_count: int
    total_discount_amount: int
    revenue_generated: int


class DashboardPromoStats(CamelModel):
    promo_usage_rate: float = Field(0.0, description="Share of paid orders carrying a promo, 0-1")
    top_promo_codes: List[DashboardPromoUsage] = []


class DashboardStats(CamelModel):
    range: DashboardRange
    generated_at: str
    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    bucket: TimelineBucket
    sales: DashboardSalesStats
    customers: DashboardCustomerStats
    products: DashboardProductStats
    promos: DashboardPromoStats
