# Overview: Loyalty points ledger; every balance change is a LoyaltyPointsHistory row.

"""
Loyalty Ledger invariants:

- Customer.loyalty_points changes only through post_points, in the same
  DB transaction as the history row that explains it.
- balance_after chain: each entry's balance_after equals the previous
  entry's balance_after plus its own points.
- The balance never goes negative.
- One point is worth one currency unit (100 cents). Earning is one point
  per 100 currency units, scaled by the tier multiplier.
"""

from __future__ import annotations

from flask import current_app

from ..errors import BadRequestError, InsufficientPointsError, NotFoundError
from ..extensions import db
from ..models import Customer, LoyaltyPointsHistory
from ..models.customers import (
    LOYALTY_ADJUST,
    LOYALTY_BONUS,
    LOYALTY_EARN,
    LOYALTY_EXPIRE,
    LOYALTY_REDEEM,
    LOYALTY_TRANSACTION_TYPES,
)
from pos_engine.money import CENTS_PER_POINT
from .concurrency import lock_for_update, run_in_transaction


DEFAULT_MULTIPLIER_BPS = 10_000
MANUAL_TRANSACTION_TYPES = (LOYALTY_ADJUST, LOYALTY_BONUS, LOYALTY_EXPIRE)


def points_for_amount(total_cents: int, multiplier_bps: int | None = None) -> int:
    """floor(total / 100 currency units * multiplier)."""
    if total_cents <= 0:
        return 0
    multiplier = DEFAULT_MULTIPLIER_BPS if multiplier_bps is None else multiplier_bps
    return (total_cents * multiplier) // (100 * CENTS_PER_POINT * DEFAULT_MULTIPLIER_BPS)


def points_value_cents(points: int) -> int:
    return points * CENTS_PER_POINT


def lock_customer(customer_id: int, *, require_active: bool = True) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise NotFoundError("Customer", details={"customer_id": customer_id})
    if require_active and (not customer.is_active or customer.deleted_at is not None):
        raise NotFoundError("Customer", details={"customer_id": customer_id})
    return customer


def post_points(
    customer: Customer,
    points: int,
    transaction_type: str,
    *,
    reference_type: str | None = None,
    reference_id: int | None = None,
    description: str | None = None,
    user_id: int | None = None,
    allow_negative: bool = False,
) -> LoyaltyPointsHistory:
    """
    Apply a signed point change to an already locked customer.

    The balance may only drop below zero with allow_negative, which sale
    reversals use when the earned points were already spent. Does not commit.
    """
    if transaction_type not in LOYALTY_TRANSACTION_TYPES:
        raise BadRequestError(f"Unknown loyalty transaction type: {transaction_type}")
    if points == 0:
        raise BadRequestError("points must be non-zero")

    balance = customer.loyalty_points + points
    if balance < 0 and not allow_negative:
        raise InsufficientPointsError(
            f"Insufficient points. Available: {customer.loyalty_points}",
            details={"customer_id": customer.id, "available": customer.loyalty_points, "requested": -points},
        )

    entry = LoyaltyPointsHistory(
        customer_id=customer.id,
        transaction_type=transaction_type,
        points=points,
        balance_after=balance,
        reference_type=reference_type,
        reference_id=reference_id,
        description=description,
        created_by_user_id=user_id,
    )
    customer.loyalty_points = balance
    db.session.add(entry)
    return entry


def earn(customer: Customer, points: int, *, sale_id: int, user_id: int | None = None) -> LoyaltyPointsHistory:
    return post_points(
        customer, points, LOYALTY_EARN,
        reference_type="sale", reference_id=sale_id,
        description="Points earned from purchase", user_id=user_id,
    )


def redeem(customer: Customer, points: int, *, sale_id: int, user_id: int | None = None) -> LoyaltyPointsHistory:
    return post_points(
        customer, -points, LOYALTY_REDEEM,
        reference_type="sale", reference_id=sale_id,
        description="Points redeemed for purchase", user_id=user_id,
    )


def adjust_points(
    customer_id: int,
    points: int,
    transaction_type: str = LOYALTY_ADJUST,
    *,
    user_id: int | None = None,
    description: str | None = None,
) -> LoyaltyPointsHistory:
    """Manual ADJUST, BONUS or EXPIRE in its own transaction."""
    if transaction_type not in MANUAL_TRANSACTION_TYPES:
        raise BadRequestError(f"Transaction type must be one of {', '.join(MANUAL_TRANSACTION_TYPES)}")
    if not isinstance(points, int) or isinstance(points, bool) or points == 0:
        raise BadRequestError("points must be a non-zero integer")
    if transaction_type == LOYALTY_BONUS and points < 0:
        raise BadRequestError("BONUS must add points")
    if transaction_type == LOYALTY_EXPIRE and points > 0:
        raise BadRequestError("EXPIRE must remove points")

    def _op():
        customer = lock_customer(customer_id)
        return post_points(
            customer, points, transaction_type,
            reference_type="manual", description=description, user_id=user_id,
        )

    entry = run_in_transaction(_op)
    current_app.logger.info(
        "Loyalty %s customer_id=%s points=%s balance=%s",
        transaction_type, customer_id, points, entry.balance_after,
    )
    return entry


def list_history(customer_id: int, *, limit: int | None = None) -> list[LoyaltyPointsHistory]:
    query = (
        db.session.query(LoyaltyPointsHistory)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyPointsHistory.id.asc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def replay_balance(customer_id: int) -> int | None:
    """
    Rebuild a customer's balance from history.

    Returns None when the customer has no entries. Raises ValueError when
    the balance_after chain is broken.
    """
    entries = list_history(customer_id)
    if not entries:
        return None

    balance = entries[0].balance_after - entries[0].points
    for entry in entries:
        balance += entry.points
        if entry.balance_after != balance:
            raise ValueError(f"Loyalty ledger chain broken at entry {entry.id}")
    return balance


def verify_customer(customer: Customer) -> dict | None:
    """Return a drift report for the customer, or None when the ledger agrees."""
    try:
        replayed = replay_balance(customer.id)
    except ValueError as exc:
        return {"customer_id": customer.id, "error": str(exc)}
    replayed = replayed or 0
    if replayed != customer.loyalty_points:
        return {
            "customer_id": customer.id,
            "loyalty_points": customer.loyalty_points,
            "replayed": replayed,
        }
    return None
