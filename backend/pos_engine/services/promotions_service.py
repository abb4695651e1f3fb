from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from ..errors import BadRequestError
from ..extensions import db
from ..models import Promotion, PromotionUsage
from ..models.promotions import (
    PROMO_BUY_X_GET_Y,
    PROMO_FIXED_AMOUNT,
    PROMO_PERCENTAGE,
    TARGET_ALL,
    TARGET_CATEGORIES,
    TARGET_CUSTOMERS,
    TARGET_GROUPS,
    TARGET_PRODUCTS,
)
from pos_engine.time_utils import parse_hhmm, parse_iso_datetime
from .concurrency import lock_for_update
from .discount_evaluator import (
    AllCustomers,
    PromotionRule,
    PromotionTarget,
    SpecificCategories,
    SpecificCustomers,
    SpecificGroups,
    SpecificProducts,
)


PROMOTION_TYPES = (PROMO_PERCENTAGE, PROMO_FIXED_AMOUNT, PROMO_BUY_X_GET_Y)
TARGET_TYPES = (TARGET_ALL, TARGET_PRODUCTS, TARGET_CATEGORIES, TARGET_CUSTOMERS, TARGET_GROUPS)


def _ids(values) -> frozenset[int]:
    return frozenset(int(v) for v in (values or []))


def build_target(promo: Promotion) -> PromotionTarget:
    target_type = promo.target_type or TARGET_ALL
    if target_type == TARGET_ALL:
        return AllCustomers()
    if target_type == TARGET_PRODUCTS:
        return SpecificProducts(_ids(promo.target_product_ids))
    if target_type == TARGET_CATEGORIES:
        return SpecificCategories(_ids(promo.target_category_ids))
    if target_type == TARGET_CUSTOMERS:
        return SpecificCustomers(_ids(promo.target_customer_ids))
    if target_type == TARGET_GROUPS:
        return SpecificGroups(_ids(promo.target_group_ids))
    raise ValueError(f"Unknown promotion target type: {target_type}")


def to_rule(promo: Promotion, customer_usage: int = 0) -> PromotionRule:
    """Snapshot a Promotion row as an evaluator rule."""
    active_hours = None
    if promo.active_hours_start and promo.active_hours_end:
        active_hours = (parse_hhmm(promo.active_hours_start), parse_hhmm(promo.active_hours_end))

    return PromotionRule(
        promotion_id=promo.id,
        name=promo.name,
        promotion_type=promo.promotion_type,
        discount_value=promo.discount_value,
        start=promo.start_date,
        end=promo.end_date,
        target=build_target(promo),
        code=promo.code or None,
        buy_quantity=promo.buy_quantity,
        get_quantity=promo.get_quantity,
        min_purchase_cents=promo.min_purchase_cents,
        max_discount_cents=promo.max_discount_cents,
        min_quantity=promo.min_quantity,
        usage_limit=promo.usage_limit,
        usage_limit_per_customer=promo.usage_limit_per_customer,
        current_usage=promo.current_usage or 0,
        customer_usage=customer_usage,
        target_membership_tiers=_ids(promo.target_membership_tiers),
        active_days=_ids(promo.active_days) if promo.active_days is not None else None,
        active_hours=active_hours,
        is_stackable=bool(promo.is_stackable),
        priority=promo.priority or 0,
        is_active=bool(promo.is_active),
    )


def load_promotion_rules(customer_id: int | None, now: datetime) -> tuple[PromotionRule, ...]:
    """
    Load promotions active at `now` as evaluator rules.

    Day/hour windows and usage caps are left to the evaluator.
    """
    promos = (
        db.session.query(Promotion)
        .filter(
            Promotion.is_active.is_(True),
            Promotion.start_date <= now,
            Promotion.end_date >= now,
        )
        .order_by(Promotion.id.asc())
        .all()
    )

    usage_by_promo: dict[int, int] = {}
    if customer_id is not None and promos:
        rows = (
            db.session.query(PromotionUsage.promotion_id, func.count(PromotionUsage.id))
            .filter(
                PromotionUsage.customer_id == customer_id,
                PromotionUsage.released_at.is_(None),
                PromotionUsage.promotion_id.in_([p.id for p in promos]),
            )
            .group_by(PromotionUsage.promotion_id)
            .all()
        )
        usage_by_promo = {promotion_id: count for promotion_id, count in rows}

    return tuple(to_rule(p, usage_by_promo.get(p.id, 0)) for p in promos)


def record_usage(applied: list[tuple[int, int]], *, sale_id: int, customer_id: int | None) -> None:
    """
    Record usage of applied promotions, given as (promotion_id, amount_cents).

    Promotions are locked in id order and the global cap is re-checked
    under the lock. Does not commit.
    """
    for promotion_id, amount_cents in sorted(applied):
        promo = lock_for_update(db.session.query(Promotion).filter_by(id=promotion_id)).first()
        if promo is None:
            raise BadRequestError("Promotion no longer exists", details={"promotion_id": promotion_id})
        if promo.usage_limit is not None and promo.current_usage >= promo.usage_limit:
            raise BadRequestError(
                "Promotion usage limit reached",
                details={"promotion_id": promotion_id, "usage_limit": promo.usage_limit},
            )
        promo.current_usage = (promo.current_usage or 0) + 1
        db.session.add(PromotionUsage(
            promotion_id=promotion_id,
            customer_id=customer_id,
            sale_id=sale_id,
            discount_amount_cents=amount_cents,
        ))


def release_usage(sale_id: int, released_at: datetime) -> int:
    """Give back the usage a reversed sale consumed. Returns how many were released."""
    usages = (
        db.session.query(PromotionUsage)
        .filter(PromotionUsage.sale_id == sale_id, PromotionUsage.released_at.is_(None))
        .order_by(PromotionUsage.promotion_id.asc())
        .all()
    )
    for usage in usages:
        promo = lock_for_update(db.session.query(Promotion).filter_by(id=usage.promotion_id)).first()
        if promo is not None and promo.current_usage > 0:
            promo.current_usage -= 1
        usage.released_at = released_at
    return len(usages)


def create_promotion(data: dict) -> Promotion:
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise BadRequestError("name is required", details={"field": "name"})
    promotion_type = data.get("promotion_type")
    if promotion_type not in PROMOTION_TYPES:
        raise BadRequestError(f"promotion_type must be one of {', '.join(PROMOTION_TYPES)}")
    target_type = data.get("target_type", TARGET_ALL)
    if target_type not in TARGET_TYPES:
        raise BadRequestError(f"target_type must be one of {', '.join(TARGET_TYPES)}")
    if promotion_type == PROMO_BUY_X_GET_Y and not (data.get("buy_quantity") and data.get("get_quantity")):
        raise BadRequestError("buy_x_get_y promotions need buy_quantity and get_quantity")

    start_date = data.get("start_date")
    end_date = data.get("end_date")
    if isinstance(start_date, str):
        start_date = parse_iso_datetime(start_date)
    if isinstance(end_date, str):
        end_date = parse_iso_datetime(end_date)
    if start_date is None or end_date is None or end_date < start_date:
        raise BadRequestError("start_date and end_date are required and must be ordered")

    promo = Promotion(
        name=name.strip(),
        description=data.get("description"),
        code=data.get("code"),
        promotion_type=promotion_type,
        discount_value=data.get("discount_value", 0),
        buy_quantity=data.get("buy_quantity"),
        get_quantity=data.get("get_quantity"),
        min_purchase_cents=data.get("min_purchase_cents"),
        max_discount_cents=data.get("max_discount_cents"),
        min_quantity=data.get("min_quantity"),
        usage_limit=data.get("usage_limit"),
        usage_limit_per_customer=data.get("usage_limit_per_customer"),
        target_type=target_type,
        target_product_ids=data.get("target_product_ids"),
        target_category_ids=data.get("target_category_ids"),
        target_customer_ids=data.get("target_customer_ids"),
        target_group_ids=data.get("target_group_ids"),
        target_membership_tiers=data.get("target_membership_tiers"),
        start_date=start_date,
        end_date=end_date,
        active_days=data.get("active_days"),
        active_hours_start=data.get("active_hours_start"),
        active_hours_end=data.get("active_hours_end"),
        is_stackable=data.get("is_stackable", False),
        priority=data.get("priority", 0),
        is_active=data.get("is_active", True),
    )
    db.session.add(promo)
    db.session.commit()
    return promo
