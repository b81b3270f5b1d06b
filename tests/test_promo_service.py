"""Tests for promo code validation: one test per rejection rule."""

from datetime import timedelta

import pytest

from conftest import NOW
from promo_service import (
    SUBSCRIPTION_CONTEXT,
    apply_promo_to_cart,
    canonical_code,
    validate_promo_code_for_total,
)


def validate(db, code="PROMO10", total=1000, **kwargs):
    kwargs.setdefault("now", NOW)
    return validate_promo_code_for_total(db, code, total, **kwargs)


class TestBasics:
    def test_canonical_code(self):
        assert canonical_code("  promo10 ") == "PROMO10"
        assert canonical_code(None) == ""

    def test_applies_with_case_and_whitespace(self, db, add_promo):
        add_promo("PROMO10")
        result = validate(db, "  promo10  ")
        assert result is not None
        assert result.promo.code == "PROMO10"
        assert result.discount_cents == 100

    @pytest.mark.parametrize("code", ["", "   ", None])
    def test_blank_code(self, db, add_promo, code):
        add_promo("PROMO10")
        assert validate(db, code) is None

    @pytest.mark.parametrize("total", [0, -5])
    def test_non_positive_total(self, db, add_promo, total):
        add_promo("PROMO10")
        assert validate(db, total=total) is None

    def test_unknown_code(self, db):
        assert validate(db, "NOPE") is None

    def test_inactive_code(self, db, add_promo):
        add_promo("PROMO10", is_active=False)
        assert validate(db) is None

    def test_unknown_target_type_behaves_like_all(self, db, add_promo):
        add_promo("PROMO10", target_type="SUBSCRIPTION")
        result = validate(db, context=SUBSCRIPTION_CONTEXT)
        assert result is not None
        assert result.discount_cents == 100


class TestStoredDocuments:
    def test_null_usage_counter_reads_as_zero(self, db, add_promo):
        add_promo("PROMO10", current_uses=None, max_uses=1)
        result = validate(db)
        assert result is not None
        assert result.promo.current_uses == 0

    def test_fractional_value_is_truncated(self, db, add_promo):
        add_promo("PROMO10", discount_value=12.9)
        assert validate(db).discount_cents == 120

    @pytest.mark.parametrize("value", [None, "beaucoup"])
    def test_unreadable_value_never_applies(self, db, add_promo, value):
        add_promo("PROMO10", discount_value=value)
        assert validate(db) is None

    def test_garbage_cap_means_unlimited(self, db, add_promo):
        add_promo("PROMO10", max_uses="many", current_uses=40)
        assert validate(db) is not None

    def test_unparseable_document_is_rejected(self, db, add_promo):
        add_promo("PROMO10", starts_at="bientôt")
        assert validate(db) is None


class TestContextGate:
    @pytest.mark.parametrize("target", ["CATEGORY", "PRODUCT"])
    def test_scoped_promo_rejected_outside_product_cart(self, db, add_promo, target):
        add_promo("PROMO10", target_type=target, product_category_id="cat1")
        assert validate(db, context=SUBSCRIPTION_CONTEXT, category_totals={"cat1": 1000}) is None

    def test_all_promo_accepted_for_subscriptions(self, db, add_promo):
        add_promo("PROMO10")
        assert validate(db, context=SUBSCRIPTION_CONTEXT) is not None


class TestTimeWindow:
    def test_not_started(self, db, add_promo):
        add_promo("PROMO10", starts_at=NOW + timedelta(seconds=1))
        assert validate(db) is None

    def test_started(self, db, add_promo):
        add_promo("PROMO10", starts_at=NOW - timedelta(seconds=1))
        assert validate(db) is not None

    def test_expired(self, db, add_promo):
        add_promo("PROMO10", ends_at=NOW - timedelta(seconds=1))
        assert validate(db) is None

    def test_not_yet_expired(self, db, add_promo):
        add_promo("PROMO10", ends_at=NOW + timedelta(seconds=1))
        assert validate(db) is not None


class TestUsageCap:
    def test_one_use_left(self, db, add_promo):
        add_promo("PROMO10", max_uses=5, current_uses=4)
        assert validate(db) is not None

    def test_cap_reached(self, db, add_promo):
        add_promo("PROMO10", max_uses=5, current_uses=5)
        assert validate(db) is None

    def test_zero_cap_means_unlimited(self, db, add_promo):
        add_promo("PROMO10", max_uses=0, current_uses=300)
        assert validate(db) is not None

    def test_validation_does_not_consume_uses(self, db, add_promo):
        add_promo("PROMO10", max_uses=1, current_uses=0)
        for _ in range(3):
            assert validate(db) is not None
        assert db["promocode"].find_one({"code": "PROMO10"})["current_uses"] == 0


class TestEligibleBase:
    def test_category_promo_without_category_never_applies(self, db, add_promo):
        add_promo("PROMO10", target_type="CATEGORY", product_category_id=None)
        assert validate(db, category_totals={"cat1": 1000}) is None

    def test_product_promo_without_category_covers_whole_cart(self, db, add_promo):
        add_promo("PROMO10", target_type="PRODUCT", product_category_id=None)
        result = validate(db, category_totals={"cat1": 1000})
        assert result is not None
        assert result.discount_cents == 100

    def test_category_promo_uses_category_subtotal(self, db, add_promo):
        add_promo("PROMO10", target_type="CATEGORY", product_category_id="cat2", discount_value=50)
        result = validate(db, total=1000, category_totals={"cat1": 600, "cat2": 400})
        assert result.discount_cents == 200

    def test_product_promo_keyed_by_category(self, db, add_promo):
        add_promo("PROMO10", target_type="PRODUCT", product_category_id="cat1", discount_value=10)
        result = validate(db, total=1000, category_totals={"cat1": 600, "cat2": 400})
        assert result.discount_cents == 60

    def test_category_absent_from_cart(self, db, add_promo):
        add_promo("PROMO10", target_type="CATEGORY", product_category_id="cat9")
        assert validate(db, category_totals={"cat1": 1000}) is None


class TestDiscount:
    def test_percent_is_floored(self, db, add_promo):
        add_promo("PROMO10", discount_value=10)
        assert validate(db, total=333).discount_cents == 33

    def test_amount_is_not_scaled(self, db, add_promo):
        add_promo("PROMO10", target_type="CATEGORY", product_category_id="cat1",
                  discount_type="AMOUNT", discount_value=150)
        result = validate(db, total=1000, category_totals={"cat1": 200})
        assert result.discount_cents == 150

    def test_unknown_discount_type(self, db, add_promo):
        add_promo("PROMO10", discount_type="FREEBIE")
        assert validate(db) is None

    def test_percent_rounding_to_zero(self, db, add_promo):
        add_promo("PROMO10", discount_value=1)
        assert validate(db, total=50) is None

    def test_full_percent_equals_total(self, db, add_promo):
        add_promo("PROMO10", discount_value=100)
        assert validate(db, total=1000).discount_cents == 1000

    def test_amount_clamped_to_total(self, db, add_promo):
        add_promo("PROMO10", discount_type="AMOUNT", discount_value=5000)
        assert validate(db, total=1000).discount_cents == 1000


class TestApplyPromoToCart:
    def test_end_to_end(self, db, add_product, add_promo):
        product_a = add_product("A", 1000, "cat1")
        add_promo("PROMO10")
        result = apply_promo_to_cart(db, [{"productId": product_a, "quantity": 2}], "PROMO10", now=NOW)
        assert result == {"code": "PROMO10", "discount_amount": 200, "new_total": 1800}

    def test_not_applicable(self, db, add_product):
        product_a = add_product("A", 1000, "cat1")
        assert apply_promo_to_cart(db, [{"productId": product_a}], "NOPE", now=NOW) is None
