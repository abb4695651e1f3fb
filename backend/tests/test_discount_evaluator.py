"""
Discount evaluator tests.

Verifies:
- Stage precedence (government, membership, promotion)
- Government discount selection and VAT exemption
- Promotion candidate ordering, stacking, caps and schedules
- Evaluator discounts never exceed the discountable subtotal
"""

from dataclasses import dataclass
from datetime import datetime, time

import pytest

from pos_engine.money import allocate_proportionally, apply_bps
from pos_engine.services.discount_evaluator import (
    AllCustomers,
    CartLine,
    CustomerContext,
    EvaluationConfig,
    GovernmentSetting,
    PromotionRule,
    SpecificCategories,
    SpecificCustomers,
    SpecificGroups,
    SpecificProducts,
    TierRule,
    candidate_promotions,
    discount_precedence,
    evaluate,
    is_promotion_active,
    promotion_amount,
    target_matches,
)


NOW = datetime(2026, 10, 19, 14, 30)  # Monday

SENIOR = GovernmentSetting("senior_citizen", "Senior Citizen Discount", 2000, is_vat_exempt=True, requires_id=True)
PWD = GovernmentSetting("pwd", "PWD Discount", 2000, is_vat_exempt=True, requires_id=True)


def _line(product_id=1, quantity=1, price=10000, category_id=None, manual=0):
    return CartLine(
        product_id=product_id,
        category_id=category_id,
        quantity=quantity,
        unit_price_cents=price,
        manual_discount_cents=manual,
    )


def _rule(promotion_id=1, **overrides):
    values = dict(
        promotion_id=promotion_id,
        name=f"Promo {promotion_id}",
        promotion_type="percentage",
        discount_value=1000,
        start=datetime(2026, 1, 1),
        end=datetime(2026, 12, 31, 23, 59),
    )
    values.update(overrides)
    return PromotionRule(**values)


def _config(*promotions, settings=(SENIOR, PWD)):
    return EvaluationConfig(government_settings=tuple(settings), promotions=tuple(promotions))


# =============================================================================
# MONEY HELPERS
# =============================================================================


class TestMoney:
    def test_apply_bps_rounds_half_up(self):
        assert apply_bps(20000, 1200) == 2400
        assert apply_bps(125, 1200) == 15  # 15.0
        assert apply_bps(1, 5000) == 1  # 0.5 rounds up
        assert apply_bps(1, 4999) == 0

    def test_apply_bps_ignores_non_positive(self):
        assert apply_bps(0, 1200) == 0
        assert apply_bps(1000, 0) == 0

    def test_allocation_sums_exactly(self):
        shares = allocate_proportionally(100, [1, 1, 1])
        assert sum(shares) == 100
        assert shares == [34, 33, 33]

    def test_allocation_follows_weights(self):
        assert allocate_proportionally(4000, [20000, 10000, 10000]) == [2000, 1000, 1000]

    def test_allocation_with_zero_weights(self):
        assert allocate_proportionally(500, [0, 0]) == [0, 0]


# =============================================================================
# PRECEDENCE AND GOVERNMENT DISCOUNTS
# =============================================================================


class TestGovernmentStage:
    def test_precedence_order(self):
        assert discount_precedence() == ("government", "membership", "promotion")

    def test_senior_discount_is_vat_exempt(self):
        result = evaluate([_line(quantity=2)], CustomerContext(is_senior_citizen=True), _config(), NOW)

        assert result.government.amount_cents == 4000
        assert result.government.is_government_mandated
        assert result.is_vat_exempt
        assert result.total_cents == 4000

    def test_senior_wins_over_pwd(self):
        customer = CustomerContext(is_senior_citizen=True, is_pwd=True)
        result = evaluate([_line()], customer, _config(), NOW)
        assert result.government.discount_type == "senior_citizen"

    def test_pwd_discount(self):
        result = evaluate([_line()], CustomerContext(is_pwd=True), _config(), NOW)
        assert result.government.discount_type == "pwd"
        assert result.government.amount_cents == 2000

    def test_inactive_setting_gives_nothing(self):
        inactive = GovernmentSetting("senior_citizen", "Senior", 2000, is_vat_exempt=True, is_active=False)
        result = evaluate([_line()], CustomerContext(is_senior_citizen=True), _config(settings=(inactive,)), NOW)
        assert result.government is None
        assert not result.is_vat_exempt

    def test_no_flags_no_government_discount(self):
        result = evaluate([_line()], CustomerContext(), _config(), NOW)
        assert result.government is None
        assert result.discounts == ()


# =============================================================================
# MEMBERSHIP
# =============================================================================


class TestMembershipStage:
    def test_tier_discount(self):
        customer = CustomerContext(customer_id=7, tier=TierRule(4, "Gold", 800))
        result = evaluate([_line()], customer, _config(), NOW)
        assert result.membership.amount_cents == 800
        assert result.membership.name == "Gold Member Discount"

    def test_tier_applies_after_government(self):
        customer = CustomerContext(customer_id=7, is_senior_citizen=True, tier=TierRule(3, "Silver", 500))
        result = evaluate([_line()], customer, _config(), NOW)
        assert result.government.amount_cents == 2000
        assert result.membership.amount_cents == 400  # 5% of 8000
        assert [d.discount_type for d in result.discounts] == ["senior_citizen", "membership"]

    def test_inactive_tier_ignored(self):
        customer = CustomerContext(customer_id=7, tier=TierRule(4, "Gold", 800, is_active=False))
        assert evaluate([_line()], customer, _config(), NOW).membership is None


# =============================================================================
# PROMOTIONS
# =============================================================================


class TestPromotionAmounts:
    def test_percentage(self):
        assert promotion_amount(_rule(discount_value=1500), [_line()], 10000) == 1500

    def test_fixed_amount(self):
        rule = _rule(promotion_type="fixed_amount", discount_value=2500)
        assert promotion_amount(rule, [_line()], 10000) == 2500

    def test_buy_x_get_y(self):
        rule = _rule(promotion_type="buy_x_get_y", buy_quantity=2, get_quantity=1, discount_value=0)
        cart = [_line(quantity=5, price=1000), _line(product_id=2, quantity=6, price=500)]
        # floor(5/3)*1*1000 + floor(6/3)*1*500
        assert promotion_amount(rule, cart, 8000) == 2000

    def test_buy_x_get_y_only_counts_targeted_products(self):
        rule = _rule(
            promotion_type="buy_x_get_y", buy_quantity=1, get_quantity=1,
            target=SpecificProducts(frozenset({2})),
        )
        cart = [_line(product_id=1, quantity=4, price=1000), _line(product_id=2, quantity=2, price=300)]
        assert promotion_amount(rule, cart, 4600) == 300

    def test_max_discount_caps_amount(self):
        rule = _rule(discount_value=5000, max_discount_cents=1200)
        assert promotion_amount(rule, [_line()], 10000) == 1200

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            promotion_amount(_rule(promotion_type="mystery"), [_line()], 10000)


class TestPromotionSelection:
    def test_coupon_evaluated_before_auto_apply(self):
        coupon = _rule(1, code="SAVE10", priority=0)
        auto = _rule(2, priority=50)
        ordered = candidate_promotions([auto, coupon], CustomerContext(coupon_code="save10"), NOW)
        assert [r.promotion_id for r in ordered] == [1, 2]

    def test_coded_promotion_needs_coupon(self):
        result = evaluate([_line()], CustomerContext(), _config(_rule(code="SAVE10")), NOW)
        assert result.promotions == ()

    def test_unknown_coupon_is_ignored(self):
        auto = _rule(2, discount_value=500)
        result = evaluate([_line()], CustomerContext(coupon_code="NOPE"), _config(_rule(1, code="SAVE10"), auto), NOW)
        assert [p.reference_id for p in result.promotions] == [2]

    def test_priority_then_id(self):
        rules = [_rule(3, priority=1), _rule(1, priority=5), _rule(2, priority=5)]
        ordered = candidate_promotions(rules, CustomerContext(), NOW)
        assert [r.promotion_id for r in ordered] == [1, 2, 3]

    def test_non_stackable_stops_evaluation(self):
        config = _config(_rule(1, priority=10, is_stackable=False), _rule(2, priority=5, is_stackable=True))
        result = evaluate([_line()], CustomerContext(), config, NOW)
        assert [p.reference_id for p in result.promotions] == [1]

    def test_stackable_promotions_accumulate(self):
        config = _config(
            _rule(1, priority=10, is_stackable=True, discount_value=1000),
            _rule(2, priority=5, is_stackable=True, promotion_type="fixed_amount", discount_value=300),
        )
        result = evaluate([_line()], CustomerContext(), config, NOW)
        assert [p.amount_cents for p in result.promotions] == [1000, 300]
        assert result.total_cents == 1300

    def test_min_purchase(self):
        config = _config(_rule(min_purchase_cents=20000))
        assert evaluate([_line()], CustomerContext(), config, NOW).promotions == ()
        assert len(evaluate([_line(quantity=2)], CustomerContext(), config, NOW).promotions) == 1

    def test_min_quantity_counts_targeted_units(self):
        rule = _rule(min_quantity=3, target=SpecificCategories(frozenset({9})))
        cart = [_line(product_id=1, quantity=2, category_id=9), _line(product_id=2, quantity=5, category_id=1)]
        assert evaluate(cart, CustomerContext(), _config(rule), NOW).promotions == ()

    def test_membership_tier_restriction(self):
        rule = _rule(target_membership_tiers=frozenset({4}))
        silver = CustomerContext(customer_id=1, tier=TierRule(3, "Silver", 0))
        gold = CustomerContext(customer_id=1, tier=TierRule(4, "Gold", 0))
        assert evaluate([_line()], silver, _config(rule), NOW).promotions == ()
        assert len(evaluate([_line()], gold, _config(rule), NOW).promotions) == 1


class TestPromotionSchedule:
    def test_outside_date_range(self):
        rule = _rule(start=datetime(2026, 11, 1), end=datetime(2026, 11, 30))
        assert not is_promotion_active(rule, CustomerContext(), NOW)

    def test_active_days_use_sunday_as_zero(self):
        rule = _rule(active_days=frozenset({0}))
        assert is_promotion_active(rule, CustomerContext(), datetime(2026, 10, 18, 12, 0))
        assert not is_promotion_active(rule, CustomerContext(), NOW)

    def test_hours_window(self):
        rule = _rule(active_hours=(time(9, 0), time(17, 0)))
        assert is_promotion_active(rule, CustomerContext(), NOW)
        assert not is_promotion_active(rule, CustomerContext(), datetime(2026, 10, 19, 18, 0))

    def test_overnight_hours_window(self):
        rule = _rule(active_hours=(time(22, 0), time(2, 0)))
        assert is_promotion_active(rule, CustomerContext(), datetime(2026, 10, 19, 23, 30))
        assert is_promotion_active(rule, CustomerContext(), datetime(2026, 10, 20, 1, 15))
        assert not is_promotion_active(rule, CustomerContext(), NOW)

    def test_global_usage_limit(self):
        assert not is_promotion_active(_rule(usage_limit=5, current_usage=5), CustomerContext(), NOW)

    def test_per_customer_limit_needs_a_customer(self):
        rule = _rule(usage_limit_per_customer=1, customer_usage=1)
        assert not is_promotion_active(rule, CustomerContext(customer_id=3), NOW)
        assert is_promotion_active(rule, CustomerContext(), NOW)


class TestTargets:
    def test_all(self):
        assert target_matches(AllCustomers(), [_line()], CustomerContext())

    def test_products_and_categories(self):
        cart = [_line(product_id=5, category_id=2)]
        assert target_matches(SpecificProducts(frozenset({5})), cart, CustomerContext())
        assert not target_matches(SpecificProducts(frozenset({6})), cart, CustomerContext())
        assert target_matches(SpecificCategories(frozenset({2})), cart, CustomerContext())

    def test_customers_and_groups(self):
        customer = CustomerContext(customer_id=11, group_ids=frozenset({3}))
        assert target_matches(SpecificCustomers(frozenset({11})), [_line()], customer)
        assert not target_matches(SpecificCustomers(frozenset({11})), [_line()], CustomerContext())
        assert target_matches(SpecificGroups(frozenset({3, 4})), [_line()], customer)
        assert not target_matches(SpecificGroups(frozenset({4})), [_line()], customer)

    def test_unknown_target_raises(self):
        @dataclass(frozen=True)
        class Everyone:
            pass

        with pytest.raises(TypeError):
            target_matches(Everyone(), [_line()], CustomerContext())


# =============================================================================
# TOTALS
# =============================================================================


class TestDiscountCeiling:
    def test_total_never_exceeds_discountable_subtotal(self):
        config = _config(_rule(promotion_type="fixed_amount", discount_value=50000, is_stackable=True))
        cart = [_line(manual=1000)]
        result = evaluate(cart, CustomerContext(is_senior_citizen=True), config, NOW)
        assert result.government.amount_cents == 2000
        assert result.promotions[0].amount_cents == 7000
        assert result.total_cents == 9000

    def test_fully_consumed_cart_skips_later_stages(self):
        config = _config(_rule(promotion_type="fixed_amount", discount_value=100))
        result = evaluate([_line(manual=10000)], CustomerContext(is_senior_citizen=True), config, NOW)
        assert result.discounts == ()
        assert result.is_vat_exempt

    def test_deterministic(self):
        config = _config(_rule(1, is_stackable=True), _rule(2, promotion_type="fixed_amount", discount_value=250))
        cart = [_line(quantity=3), _line(product_id=2, price=499)]
        customer = CustomerContext(customer_id=1, tier=TierRule(2, "Bronze", 300))
        assert evaluate(cart, customer, config, NOW) == evaluate(cart, customer, config, NOW)
