# Overview: Pure discount and promotion evaluation; no database, clock or randomness.

"""
Discount/Promotion Evaluator.

Given cart lines, a customer context, a configuration snapshot and the
evaluation instant, decide which discounts apply and how much each is
worth. Stages run in the order returned by discount_precedence(); each
stage sees how much of the cart is still discountable, so the sum of
evaluator discounts never exceeds the subtotal less manual line discounts.

Amounts are integer cents. Percentages are basis points.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time

from pos_engine.money import apply_bps
from pos_engine.time_utils import in_daily_window, weekday_sunday_zero


STAGE_GOVERNMENT = "government"
STAGE_MEMBERSHIP = "membership"
STAGE_PROMOTION = "promotion"

GOVERNMENT_SENIOR_CITIZEN = "senior_citizen"
GOVERNMENT_PWD = "pwd"


def discount_precedence() -> tuple[str, ...]:
    """Order in which discount stages are evaluated and applied."""
    return (STAGE_GOVERNMENT, STAGE_MEMBERSHIP, STAGE_PROMOTION)


# ---------------------------------------------------------------------------
# Promotion targets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AllCustomers:
    pass


@dataclass(frozen=True)
class SpecificProducts:
    product_ids: frozenset[int]


@dataclass(frozen=True)
class SpecificCategories:
    category_ids: frozenset[int]


@dataclass(frozen=True)
class SpecificCustomers:
    customer_ids: frozenset[int]


@dataclass(frozen=True)
class SpecificGroups:
    group_ids: frozenset[int]


PromotionTarget = AllCustomers | SpecificProducts | SpecificCategories | SpecificCustomers | SpecificGroups


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CartLine:
    product_id: int
    category_id: int | None
    quantity: int
    unit_price_cents: int
    manual_discount_cents: int = 0

    @property
    def subtotal_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class TierRule:
    tier_id: int
    name: str
    discount_bps: int
    points_multiplier_bps: int = 10_000
    is_active: bool = True


@dataclass(frozen=True)
class CustomerContext:
    customer_id: int | None = None
    is_senior_citizen: bool = False
    is_pwd: bool = False
    tier: TierRule | None = None
    group_ids: frozenset[int] = frozenset()
    coupon_code: str | None = None


@dataclass(frozen=True)
class GovernmentSetting:
    discount_type: str
    name: str
    percentage_bps: int
    is_vat_exempt: bool = False
    requires_id: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class PromotionRule:
    """Immutable snapshot of a Promotion row plus the customer's usage count."""

    promotion_id: int
    name: str
    promotion_type: str
    discount_value: int
    start: datetime
    end: datetime
    target: PromotionTarget = AllCustomers()
    code: str | None = None
    buy_quantity: int | None = None
    get_quantity: int | None = None
    min_purchase_cents: int | None = None
    max_discount_cents: int | None = None
    min_quantity: int | None = None
    usage_limit: int | None = None
    usage_limit_per_customer: int | None = None
    current_usage: int = 0
    customer_usage: int = 0
    target_membership_tiers: frozenset[int] = frozenset()
    active_days: frozenset[int] | None = None
    active_hours: tuple[time, time] | None = None
    is_stackable: bool = False
    priority: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class EvaluationConfig:
    government_settings: tuple[GovernmentSetting, ...] = ()
    promotions: tuple[PromotionRule, ...] = ()

    def government_setting(self, discount_type: str) -> GovernmentSetting | None:
        for setting in self.government_settings:
            if setting.discount_type == discount_type and setting.is_active:
                return setting
        return None


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppliedDiscount:
    discount_type: str
    name: str
    amount_cents: int
    percentage_bps: int | None = None
    reference_id: int | None = None
    is_vat_exempt: bool = False
    is_government_mandated: bool = False


@dataclass(frozen=True)
class EvaluationResult:
    subtotal_cents: int
    government: AppliedDiscount | None = None
    membership: AppliedDiscount | None = None
    promotions: tuple[AppliedDiscount, ...] = ()
    is_vat_exempt: bool = False

    @property
    def discounts(self) -> tuple[AppliedDiscount, ...]:
        ordered = []
        if self.government:
            ordered.append(self.government)
        if self.membership:
            ordered.append(self.membership)
        ordered.extend(self.promotions)
        return tuple(ordered)

    @property
    def total_cents(self) -> int:
        return sum(discount.amount_cents for discount in self.discounts)


@dataclass
class _State:
    subtotal_cents: int
    room_cents: int
    government: AppliedDiscount | None = None
    membership: AppliedDiscount | None = None
    promotions: list[AppliedDiscount] = field(default_factory=list)
    is_vat_exempt: bool = False

    def take(self, amount_cents: int) -> int:
        """Trim amount to the remaining discountable room and consume it."""
        granted = max(0, min(amount_cents, self.room_cents))
        self.room_cents -= granted
        return granted


# ---------------------------------------------------------------------------
# Target matching
# ---------------------------------------------------------------------------

def target_matches(target: PromotionTarget, cart: list[CartLine], customer: CustomerContext) -> bool:
    """Exhaustive dispatch over the promotion target variants."""
    if isinstance(target, AllCustomers):
        return True
    if isinstance(target, SpecificProducts):
        return not target.product_ids or any(line.product_id in target.product_ids for line in cart)
    if isinstance(target, SpecificCategories):
        return not target.category_ids or any(
            line.category_id is not None and line.category_id in target.category_ids for line in cart
        )
    if isinstance(target, SpecificCustomers):
        return not target.customer_ids or (
            customer.customer_id is not None and customer.customer_id in target.customer_ids
        )
    if isinstance(target, SpecificGroups):
        return not target.group_ids or bool(target.group_ids & customer.group_ids)
    raise TypeError(f"Unknown promotion target: {target!r}")


def _eligible_lines(target: PromotionTarget, cart: list[CartLine]) -> list[CartLine]:
    if isinstance(target, SpecificProducts) and target.product_ids:
        return [line for line in cart if line.product_id in target.product_ids]
    if isinstance(target, SpecificCategories) and target.category_ids:
        return [line for line in cart if line.category_id in target.category_ids]
    return list(cart)


# ---------------------------------------------------------------------------
# Promotion rules
# ---------------------------------------------------------------------------

def is_promotion_active(rule: PromotionRule, customer: CustomerContext, now: datetime) -> bool:
    if not rule.is_active:
        return False
    if not (rule.start <= now <= rule.end):
        return False
    if rule.active_days is not None and weekday_sunday_zero(now) not in rule.active_days:
        return False
    if rule.active_hours is not None and not in_daily_window(rule.active_hours, now):
        return False
    if rule.usage_limit is not None and rule.current_usage >= rule.usage_limit:
        return False
    if (
        rule.usage_limit_per_customer is not None
        and customer.customer_id is not None
        and rule.customer_usage >= rule.usage_limit_per_customer
    ):
        return False
    return True


def is_promotion_eligible(
    rule: PromotionRule,
    cart: list[CartLine],
    customer: CustomerContext,
    subtotal_cents: int,
) -> bool:
    if rule.min_purchase_cents and subtotal_cents < rule.min_purchase_cents:
        return False
    if not target_matches(rule.target, cart, customer):
        return False
    if rule.min_quantity:
        units = sum(line.quantity for line in _eligible_lines(rule.target, cart))
        if units < rule.min_quantity:
            return False
    if rule.target_membership_tiers:
        if customer.tier is None or customer.tier.tier_id not in rule.target_membership_tiers:
            return False
    return True


def promotion_amount(rule: PromotionRule, cart: list[CartLine], subtotal_cents: int) -> int:
    """Undiscounted value of a promotion before the discountable-room trim."""
    if rule.promotion_type == "percentage":
        amount = apply_bps(subtotal_cents, rule.discount_value)
    elif rule.promotion_type == "fixed_amount":
        amount = max(0, rule.discount_value)
    elif rule.promotion_type == "buy_x_get_y":
        amount = 0
        if rule.buy_quantity and rule.get_quantity:
            bundle = rule.buy_quantity + rule.get_quantity
            for line in _eligible_lines(rule.target, cart):
                amount += (line.quantity // bundle) * rule.get_quantity * line.unit_price_cents
    else:
        raise ValueError(f"Unknown promotion type: {rule.promotion_type}")

    if rule.max_discount_cents is not None and amount > rule.max_discount_cents:
        amount = rule.max_discount_cents
    return amount


def candidate_promotions(rules, customer: CustomerContext, now: datetime) -> list[PromotionRule]:
    """Coupon match first, then auto-apply promotions by priority (desc), id (asc)."""
    coupon = (customer.coupon_code or "").strip().upper()
    coupon_rules = []
    auto_rules = []
    for rule in rules:
        if not is_promotion_active(rule, customer, now):
            continue
        if rule.code:
            if coupon and rule.code.upper() == coupon:
                coupon_rules.append(rule)
        else:
            auto_rules.append(rule)

    coupon_rules.sort(key=lambda r: r.promotion_id)
    auto_rules.sort(key=lambda r: (-r.priority, r.promotion_id))
    return coupon_rules + auto_rules


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def _government_stage(state: _State, cart, customer: CustomerContext, config: EvaluationConfig, now) -> None:
    if customer.is_senior_citizen:
        discount_type = GOVERNMENT_SENIOR_CITIZEN
    elif customer.is_pwd:
        discount_type = GOVERNMENT_PWD
    else:
        return

    setting = config.government_setting(discount_type)
    if setting is None:
        return

    amount = state.take(apply_bps(state.subtotal_cents, setting.percentage_bps))
    state.is_vat_exempt = setting.is_vat_exempt
    if amount <= 0:
        return
    state.government = AppliedDiscount(
        discount_type=setting.discount_type,
        name=setting.name,
        amount_cents=amount,
        percentage_bps=setting.percentage_bps,
        is_vat_exempt=setting.is_vat_exempt,
        is_government_mandated=True,
    )


def _membership_stage(state: _State, cart, customer: CustomerContext, config, now) -> None:
    tier = customer.tier
    if tier is None or not tier.is_active or tier.discount_bps <= 0:
        return

    government_cents = state.government.amount_cents if state.government else 0
    amount = state.take(apply_bps(state.subtotal_cents - government_cents, tier.discount_bps))
    if amount <= 0:
        return
    state.membership = AppliedDiscount(
        discount_type="membership",
        name=f"{tier.name} Member Discount",
        amount_cents=amount,
        percentage_bps=tier.discount_bps,
        reference_id=tier.tier_id,
    )


def _promotion_stage(state: _State, cart, customer: CustomerContext, config: EvaluationConfig, now) -> None:
    for rule in candidate_promotions(config.promotions, customer, now):
        if not is_promotion_eligible(rule, cart, customer, state.subtotal_cents):
            continue
        amount = state.take(promotion_amount(rule, cart, state.subtotal_cents))
        if amount <= 0:
            continue
        state.promotions.append(
            AppliedDiscount(
                discount_type="promotion",
                name=rule.name,
                amount_cents=amount,
                percentage_bps=rule.discount_value if rule.promotion_type == "percentage" else None,
                reference_id=rule.promotion_id,
            )
        )
        if not rule.is_stackable:
            break


_STAGES = {
    STAGE_GOVERNMENT: _government_stage,
    STAGE_MEMBERSHIP: _membership_stage,
    STAGE_PROMOTION: _promotion_stage,
}


def evaluate(
    cart: list[CartLine],
    customer: CustomerContext,
    config: EvaluationConfig,
    now: datetime,
) -> EvaluationResult:
    """
    Evaluate every discount stage for a cart.

    Deterministic: the same inputs always yield the same result.
    """
    subtotal = sum(line.subtotal_cents for line in cart)
    manual = sum(line.manual_discount_cents for line in cart)
    state = _State(subtotal_cents=subtotal, room_cents=max(0, subtotal - manual))

    for stage in discount_precedence():
        _STAGES[stage](state, cart, customer, config, now)

    return EvaluationResult(
        subtotal_cents=subtotal,
        government=state.government,
        membership=state.membership,
        promotions=tuple(state.promotions),
        is_vat_exempt=state.is_vat_exempt,
    )
